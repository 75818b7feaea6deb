from .page_handle import ElementDescriptor, PageActionError, PageHandle, ResourceEvent

__all__ = ["ElementDescriptor", "PageActionError", "PageHandle", "ResourceEvent"]

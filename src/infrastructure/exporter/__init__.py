from .review_exporter import ReviewExporter, export_reviews

__all__ = ["ReviewExporter", "export_reviews"]

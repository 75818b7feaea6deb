# Web Layer
# =========
# FastAPI app exposing collections, progress, results and diagnostics.

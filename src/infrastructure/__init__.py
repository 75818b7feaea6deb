# Infrastructure Layer
# ====================
# Contains all browser-facing and process-level services:
# - browser/: PageHandle interface and its Selenium implementation
# - scraper/: resource monitor, selector engine, sort navigation, pagination
# - diagnostics/: bounded in-memory diagnostic store
# - exporter/: Excel/CSV export of collection results
# - config/: Environment and settings management
#
# This layer can be replaced entirely without affecting domain/application layers.

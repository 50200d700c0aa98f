"""
Craftmatch HTTP surface.

FastAPI app factory, routes, middleware and Prometheus metrics. Import the
app from ``craftmatch.api.app``; this package stays import-light so the
service layer can record metrics without pulling in FastAPI.
"""

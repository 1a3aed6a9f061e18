"""API router subpackage for the RouteMate backend.

Each module exposes its own APIRouter for composition in the application's
main FastAPI instance.

Submodules:
    - locations: CRUD, bulk import, radius and bounding-box search over
      stored locations.
"""

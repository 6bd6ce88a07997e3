from fastapi import APIRouter
from patch_api.api.v1 import systems, advisories, packages

router = APIRouter()
router.include_router(systems.router, tags=["Systems"])
router.include_router(advisories.router, tags=["Advisories"])
router.include_router(packages.router, tags=["Packages"])

from app.routers.resource import build_router
from app.services import type_service

router = build_router(type_service.service, "/api/v1/types", "types")

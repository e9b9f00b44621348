from app.routers.resource import build_router
from app.services import seller_service

router = build_router(seller_service.service, "/api/v1/sellers", "sellers")

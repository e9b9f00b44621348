from app.routers.resource import build_router
from app.services import customer_service

router = build_router(customer_service.service, "/api/v1/customers", "customers")

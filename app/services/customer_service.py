"""Customer service — CRUD, search and relations for Customer entries."""
from app.models import Customer
from app.services.base import CollectionService

service = CollectionService(Customer)

"""Type service — CRUD, search and relations for Type entries."""
from app.models import Type
from app.services.base import CollectionService

service = CollectionService(Type)

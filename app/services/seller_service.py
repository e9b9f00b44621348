"""
Seller service — CRUD, search and relations for Seller entries.

``customers`` is not auto-populated: the list can be long, and clients
that need it ask for the Customer collection filtered by ``seller``.
"""
from app.models import Seller
from app.services.base import CollectionService

service = CollectionService(Seller)

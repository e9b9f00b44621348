# Services package.
#
# Each resource module binds the shared ``CollectionService`` to one model:
#
#   customer_service  — Customer entries
#   seller_service    — Seller entries
#   type_service      — Type entries
#
# All service methods accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.

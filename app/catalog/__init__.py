"""
Item catalog.

Owns marketplace items and their sale status (active → pending → sold).
The escrow engine reaches it only through DjangoItemCatalog, the
database-backed implementation of escrow.protocols.ItemCatalog.
"""

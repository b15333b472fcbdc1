"""
Veil account application package.

Layered the same way throughout:

  app/repositories/  SQLAlchemy access plus the unit of work that commits
                       or rolls back one workflow and classifies store errors.
  app/services/      business logic: validation, ordering of side effects,
                       and turning failures into ``Result`` objects.

``Storefront`` (in ``veil.py``) is the integration point: it builds the
session factory, the provider clients and one instance of each service, and
exposes them as public attributes (e.g. ``storefront.address_service``).
Request handlers open a session per request and pass it as the first
argument of every service call.
"""

from __future__ import annotations


class EntityNotFoundError(LookupError):
    def __init__(self, collection: str, entity_id: str) -> None:
        super().__init__(f"{collection} `{entity_id}` not found")
        self.collection = collection
        self.entity_id = entity_id


class DuplicateIdentifierError(RuntimeError):
    pass


class AuthError(RuntimeError):
    pass

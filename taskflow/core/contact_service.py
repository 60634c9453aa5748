"""TaskFlow — Contact Service: people records with free-form profile fields."""

from __future__ import annotations

from typing import Any

from taskflow.core.entity_service import EntityService
from taskflow.data.models import Contact


class ContactService(EntityService[Contact]):
    model = Contact

    def _insert(self, records: list[dict[str, Any]], record: dict[str, Any]) -> None:
        # Newest contacts first
        records.insert(0, record)

    def list_all(self) -> list[Contact]:
        return self.all()

    def toggle_important(self, contact_id: str) -> Contact | None:
        contact = self.get(contact_id)
        if contact is None:
            return None
        return self.update(contact_id, {"is_important": not contact.is_important})

    def search(self, query: str) -> list[Contact]:
        """Case-insensitive match over name, email, company, occupation and notes.

        Phone numbers match as typed. An empty query returns everything.
        """
        contacts = self.all()
        if not query or not query.strip():
            return contacts

        lowered = query.lower()
        results = []
        for contact in contacts:
            texts = (
                contact.name,
                contact.email,
                contact.company,
                contact.occupation,
                contact.notes,
            )
            if any(text and lowered in text.lower() for text in texts):
                results.append(contact)
            elif contact.phone and query in contact.phone:
                results.append(contact)
        return results

"""Company brain onboarding and learning services."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from tasklob.entity_resolution.store import EntityStore
from tasklob.entity_resolution.types import EntityMatch, NewEntity
from tasklob.memory.history import MutableHistoryStore
from tasklob.memory.types import RoutingPattern
from tasklob.schemas.brain import BrainSeedRequest

logger = logging.getLogger(__name__)

SEEDED_PERSON_CONFIDENCE = 0.8
SEEDED_SYSTEM_CONFIDENCE = 0.9
SEEDED_COMPANY_CONFIDENCE = 0.9
OWN_COMPANY_CONFIDENCE = 1.0
SEEDED_ROUTING_CONFIDENCE = 0.7


@dataclass(slots=True)
class BrainSeedResult:
    people: list[EntityMatch] = field(default_factory=list)
    systems: list[EntityMatch] = field(default_factory=list)
    companies: list[EntityMatch] = field(default_factory=list)
    accounts: list[EntityMatch] = field(default_factory=list)
    routing: list[RoutingPattern] = field(default_factory=list)


def seed_company_brain(
    entity_store: EntityStore,
    history_store: MutableHistoryStore,
    payload: BrainSeedRequest,
) -> BrainSeedResult:
    """Register onboarding data as manually-entered, high-trust memories."""

    result = BrainSeedResult()

    if payload.company_name and payload.company_name.strip():
        metadata = {"description": "The business"}
        if payload.website_url:
            metadata["website_url"] = payload.website_url
        result.companies.append(
            entity_store.add_entity(
                NewEntity(
                    name=payload.company_name.strip(),
                    type="company",
                    metadata=metadata,
                    confidence=OWN_COMPANY_CONFIDENCE,
                )
            )
        )

    for person in payload.people:
        metadata = {"handles": list(person.handles)}
        if person.user_id:
            metadata["user_id"] = person.user_id
        created = entity_store.add_entity(
            NewEntity(
                name=person.name.strip(),
                type="person",
                role=person.role,
                email=person.email,
                metadata=metadata,
                confidence=SEEDED_PERSON_CONFIDENCE,
            )
        )
        result.people.append(created)
        for handle in person.handles:
            if not handle.strip():
                continue
            result.routing.append(
                history_store.create_routing_pattern(
                    handle,
                    person.user_id or created.id,
                    confidence=SEEDED_ROUTING_CONFIDENCE,
                    assignee_name=created.name,
                    reason=f"{created.name} handles {handle.strip()}",
                )
            )

    for system in payload.systems:
        metadata = {}
        if system.description:
            metadata["description"] = system.description
        entity_type = "account" if system.type == "account" else "system"
        created = entity_store.add_entity(
            NewEntity(
                name=system.name.strip(),
                type=entity_type,
                metadata=metadata,
                confidence=SEEDED_SYSTEM_CONFIDENCE,
            )
        )
        (result.accounts if entity_type == "account" else result.systems).append(created)

    for company in payload.companies:
        result.companies.append(
            entity_store.add_entity(
                NewEntity(
                    name=company.name.strip(),
                    type="company",
                    metadata={"description": company.description} if company.description else {},
                    confidence=SEEDED_COMPANY_CONFIDENCE,
                )
            )
        )

    for account in payload.accounts:
        result.accounts.append(
            entity_store.add_entity(
                NewEntity(
                    name=account.name.strip(),
                    type="account",
                    metadata={"description": account.description} if account.description else {},
                    confidence=SEEDED_SYSTEM_CONFIDENCE,
                )
            )
        )

    logger.info(
        "brain.seeded people=%d systems=%d companies=%d accounts=%d routing=%d",
        len(result.people),
        len(result.systems),
        len(result.companies),
        len(result.accounts),
        len(result.routing),
    )
    return result

from __future__ import annotations

from typing import Any, List

from harvester.models.news_entities import SourceType


async def fetch_source_types(db: Any) -> List[SourceType]:
    """List the seeded source_type reference rows."""
    rows = await db.fetch(
        """
        SELECT id, name, description
        FROM source_type
        ORDER BY id
        """
    )
    return [
        SourceType(id=int(row["id"]), name=row["name"], description=row["description"])
        for row in rows
    ]

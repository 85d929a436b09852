# =============================================================================
# unihost_core/services/properties.py
# Property CRUD (looked up by name within a host before creation)
# =============================================================================

from __future__ import annotations
import uuid
from typing import List, Optional

from unihost_core.data import TABLE_PROPERTIES
from unihost_core.errors import GatewayError, error_boundary
from unihost_core.models import Platform, Property
from unihost_core.services.base_service import BaseService


class PropertyService(BaseService):

    async def _find(self, name: str, host_id: str) -> Optional[Property]:
        row = await self.gateway.select_one(
            TABLE_PROPERTIES, filters={"name": name, "host_id": host_id}
        )
        return self.decode(Property, row)

    @error_boundary(default_return=None)
    async def find_or_create(
        self,
        name: str,
        host_id: str,
        platform: Platform,
        location: Optional[str] = None,
    ) -> Optional[Property]:
        """
        Return the host's property called ``name``, creating it if needed.

        (name, host_id) is the natural key. A concurrent creator can win the
        race between lookup and insert; the duplicate-key error then falls
        back to the lookup.
        """
        existing = await self._find(name, host_id)
        if existing is not None:
            return existing

        record = {
            "id": str(uuid.uuid4()),
            "name": name,
            "host_id": host_id,
            "platform": Platform.parse(platform).value,
        }
        if location:
            record["location"] = location

        try:
            row = await self.gateway.insert(TABLE_PROPERTIES, record)
        except GatewayError as e:
            if not e.is_duplicate:
                raise
            self.logger.info(f"Property {name} was created concurrently, reusing it")
            return await self._find(name, host_id)

        self.logger.info(f"Created property {name} on {record['platform']}")
        return self.decode(Property, row)

    @error_boundary(default_return=[])
    async def list_by_host(self, host_id: str) -> List[Property]:
        rows = await self.gateway.select(
            TABLE_PROPERTIES, filters={"host_id": host_id}, order_by="name"
        )
        return self.decode_all(Property, rows)

    @error_boundary(default_return=None)
    async def get_by_id(self, property_id: str) -> Optional[Property]:
        row = await self.gateway.select_one(TABLE_PROPERTIES, filters={"id": property_id})
        return self.decode(Property, row)

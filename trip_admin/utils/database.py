"""Supabase database utility functions"""
import logging
from typing import Any, Dict, List, Optional

from supabase import AsyncClient, acreate_client

from ..config import settings

logger = logging.getLogger(__name__)


class PersistenceFailure(Exception):
    """Raised when a trip procedure or row operation is rejected"""
    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        self.report = None
        super().__init__(self.message)


class SupabaseClient:
    """Holder for the service-role client and factory for caller-scoped clients"""
    _admin: Optional[AsyncClient] = None

    @classmethod
    async def get_admin_client(cls) -> AsyncClient:
        """Get or create the service-role client (bypasses row level security)"""
        if cls._admin is None:
            cls._admin = await acreate_client(
                supabase_url=settings.supabase_url,
                supabase_key=settings.supabase_service_role_key
            )
        return cls._admin

    @staticmethod
    async def create_user_client(access_token: str) -> AsyncClient:
        """
        Create a client that acts as the caller

        Database and storage requests carry the caller's JWT, so row level
        security and storage policies apply to them.
        """
        from supabase.lib.client_options import AsyncClientOptions

        return await acreate_client(
            supabase_url=settings.supabase_url,
            supabase_key=settings.supabase_key,
            options=AsyncClientOptions(headers={"Authorization": f"Bearer {access_token}"})
        )


# Auth operations
async def get_user_for_token(access_token: str) -> Optional[Dict[str, Any]]:
    """
    Resolve an access token to the Supabase auth user

    Args:
        access_token: JWT issued by Supabase Auth

    Returns:
        {"id", "email", "role"} or None if the token is invalid
    """
    client = await SupabaseClient.get_admin_client()
    try:
        response = await client.auth.get_user(access_token)
    except Exception as e:
        logger.info(f"Token verification failed: {e}")
        return None

    user = getattr(response, "user", None)
    if user is None:
        return None

    return {
        "id": user.id,
        "email": user.email or "",
        "role": (user.user_metadata or {}).get("role", ""),
    }


async def list_auth_users() -> List[Dict[str, Any]]:
    """
    List all auth users (service role only)

    Returns:
        List of {"id", "email", "created_at", "role"}
    """
    client = await SupabaseClient.get_admin_client()
    users = await client.auth.admin.list_users()

    return [
        {
            "id": u.id,
            "email": u.email or "",
            "created_at": str(u.created_at) if u.created_at else None,
            "role": (u.user_metadata or {}).get("role", ""),
        }
        for u in users or []
    ]


class TripRepository:
    """Trip procedures and row operations, run as the caller"""

    def __init__(self, client: AsyncClient):
        self.client = client

    async def create_trip_with_relations(self, payload: Dict[str, Any]) -> Optional[str]:
        """
        Create a trip and all its children in one transaction

        Args:
            payload: TripPayload.to_wire() output

        Returns:
            New trip id

        Raises:
            PersistenceFailure: If the procedure rejects the payload
        """
        try:
            result = await self.client.rpc("create_trip_with_relations", {"payload": payload}).execute()
        except Exception as e:
            raise PersistenceFailure(str(e), {"procedure": "create_trip_with_relations"}) from e

        data = result.data or {}
        return data.get("trip_id") if isinstance(data, dict) else None

    async def update_trip_with_relations(self, trip_id: str, payload: Dict[str, Any]) -> List[str]:
        """
        Update a trip and its children in one transaction

        Args:
            trip_id: Trip to update
            payload: TripPayload.to_wire() output

        Returns:
            URLs of media rows the procedure deleted

        Raises:
            PersistenceFailure: If the procedure rejects the payload
        """
        try:
            result = await self.client.rpc(
                "update_trip_with_relations",
                {"trip_id_param": trip_id, "payload": payload}
            ).execute()
        except Exception as e:
            raise PersistenceFailure(str(e), {"procedure": "update_trip_with_relations", "trip_id": trip_id}) from e

        data = result.data or {}
        if not isinstance(data, dict):
            return []
        return [url for url in data.get("deleted_media_urls") or [] if url]

    async def list_trips(self) -> List[Dict[str, Any]]:
        """
        Trips newest first, with days, entities and day media

        Returns:
            Raw rows; each day carries a "day_media" list
        """
        result = await self.client.table("trips")\
            .select("*, days (*, activities (*), attractions (*), accommodations (*))")\
            .order("created_at", desc=True)\
            .execute()
        trips = result.data or []

        day_ids = [day["id"] for trip in trips for day in trip.get("days") or []]
        media_by_day: Dict[str, List[Dict[str, Any]]] = {}
        if day_ids:
            media = await self.client.table("day_media")\
                .select("*")\
                .in_("day_id", day_ids)\
                .execute()
            for row in media.data or []:
                media_by_day.setdefault(row["day_id"], []).append(row)

        for trip in trips:
            for day in trip.get("days") or []:
                day["day_media"] = media_by_day.get(day["id"], [])
        return trips

    async def get_day_ids(self, trip_id: str) -> List[str]:
        result = await self.client.table("days").select("id").eq("trip_id", trip_id).execute()
        return [row["id"] for row in result.data or []]

    async def get_cover_image(self, trip_id: str) -> Optional[str]:
        result = await self.client.table("trips")\
            .select("cover_image")\
            .eq("id", trip_id)\
            .limit(1)\
            .execute()
        return result.data[0].get("cover_image") if result.data else None

    async def get_day_media_urls(self, day_ids: List[str]) -> List[str]:
        if not day_ids:
            return []
        result = await self.client.table("day_media").select("media_url").in_("day_id", day_ids).execute()
        return [row["media_url"] for row in result.data or [] if row.get("media_url")]

    async def delete_rows(self, table: str, column: str, values: List[str]) -> None:
        """Delete rows whose column is in values"""
        await self.client.table(table).delete().in_(column, values).execute()

    async def delete_trip(self, trip_id: str) -> None:
        await self.client.table("trips").delete().eq("id", trip_id).execute()

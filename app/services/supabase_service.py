from supabase import create_client, Client
from app.core.config import settings
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)


class SupabaseService:
    """Identity lookups against Supabase Auth, used when a token can't be verified locally"""

    def __init__(self):
        self.supabase: Optional[Client] = None
        if settings.supabase_url and settings.supabase_key:
            try:
                self.supabase = create_client(
                    supabase_url=settings.supabase_url,
                    supabase_key=settings.supabase_key
                )
                logger.info("✅ Supabase client initialized successfully")
            except Exception as e:
                logger.warning(f"❌ Failed to initialize Supabase client: {e}")
                self.supabase = None
        else:
            logger.info("Supabase URL or KEY not provided, remote token lookup disabled")

    @property
    def configured(self) -> bool:
        return self.supabase is not None

    async def get_user(self, access_token: str) -> Dict[str, Any]:
        """Get user details from access token"""
        if not self.supabase:
            return {
                "success": False,
                "error": "Supabase client not initialized"
            }
        try:
            response = self.supabase.auth.get_user(access_token)
            return {
                "success": True,
                "user": response.user
            }
        except Exception as e:
            return {
                "success": False,
                "error": str(e)
            }


# Create singleton instance
supabase_service = SupabaseService()

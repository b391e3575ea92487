# Infrastructure Persistence Adapters Package
from .snapshot import SnapshotRepository
from .supabase_rest import SupabaseRepository

__all__ = ["SupabaseRepository", "SnapshotRepository"]

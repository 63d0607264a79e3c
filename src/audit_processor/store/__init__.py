"""Record store access for audits and findings."""
from audit_processor.store.record_store import BATCH_SIZE, RecordStoreClient

__all__ = ["BATCH_SIZE", "RecordStoreClient"]

from typing import Dict, List, Any
import asyncio
import uuid
from datetime import datetime

from knowledge_interview.domain.models.interview_state import GeneratedInstance
from knowledge_interview.domain.ports.collaborators import DurableInstanceStore


class InMemoryInstanceStore(DurableInstanceStore):
    """Process-local store of generated instance datasets"""

    def __init__(self):
        self.datasets: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def create(self, owner_id: str, instances: List[GeneratedInstance]) -> str:
        """Store instances as a new dataset"""

        async with self._lock:
            dataset_id = str(uuid.uuid4())
            self.datasets[dataset_id] = {
                "id": dataset_id,
                "owner_id": owner_id,
                "instances": [instance.model_copy(deep=True) for instance in instances],
                "created_at": datetime.utcnow().isoformat()
            }
            return dataset_id

    async def get(self, dataset_id: str) -> List[GeneratedInstance]:
        """Get instances of a dataset"""

        async with self._lock:
            dataset = self.datasets.get(dataset_id)
            return list(dataset["instances"]) if dataset else []

    async def list_by_owner(self, owner_id: str) -> List[str]:
        """Dataset ids owned by a user"""

        async with self._lock:
            return [d["id"] for d in self.datasets.values() if d["owner_id"] == owner_id]

from typing import List, Optional

from mili_llama.constants import ATTACHMENTS_FOLDER, SCHOOLS_COLLECTION
from mili_llama.errors import BlobStoreError
from mili_llama.helper.record_mapping_helper import school_from_data, school_to_data
from mili_llama.models.model import School
from mili_llama.services.backend import Backend
from mili_llama.utils.logging_config import get_service_logger
from mili_llama.views.live_collection import LiveCollectionView

logger = get_service_logger()


def school_attachments_path(school_id: str) -> str:
    return f"{SCHOOLS_COLLECTION}/{school_id}/{ATTACHMENTS_FOLDER}"


class SchoolService:

    def __init__(self, backend: Backend):
        self.backend = backend

    def create_school(self, school: School) -> School:
        school.document_id = self.backend.documents.add(SCHOOLS_COLLECTION, school_to_data(school))
        logger.info(f"School {school.school_name} created as {school.document_id}")
        return school

    def find_school_id_by_domain(self, domain: str) -> Optional[str]:
        matches = self.backend.documents.query(SCHOOLS_COLLECTION, {"domain": domain.lower()})
        return matches[0].id if matches else None

    def get_school(self, school_id: str) -> Optional[School]:
        document = self.backend.documents.get(SCHOOLS_COLLECTION, school_id)
        if document is None:
            logger.warning(f"School document not found: {school_id}")
            return None
        return school_from_data(document.id, document.data)

    def live_schools(self, **kwargs) -> LiveCollectionView[School]:
        return LiveCollectionView(
            self.backend.documents, SCHOOLS_COLLECTION, school_from_data, label="schools", **kwargs
        )

    def list_policy_attachments(self, school_id: str) -> List[str]:
        """File names of the policy documents a school uploaded. Empty when they cannot be listed."""
        try:
            return self.backend.blobs.list_children(school_attachments_path(school_id))
        except BlobStoreError as e:
            logger.error(f"Could not list attachments of school {school_id}: {e}")
            return []

    def fetch_policy_attachment(self, school_id: str, file_name: str) -> Optional[str]:
        """Download one policy document to a temp file and return its local path, or None."""
        try:
            return self.backend.blobs.get_file(f"{school_attachments_path(school_id)}/{file_name}")
        except BlobStoreError as e:
            logger.error(f"Could not fetch attachment {file_name} of school {school_id}: {e}")
            return None

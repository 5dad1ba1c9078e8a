from typing import Any

from .models import marker
from .sink import UpsertSink


class ChangeDetector:
    def __init__(self, sink: UpsertSink, entity: str, marker_field: str = "remote_version"):
        self.sink = sink
        self.entity = entity
        self.marker_field = marker_field

    def needs_reprocessing(self, key: Any, remote_version: Any) -> bool:
        remote = marker(remote_version)
        if remote is None:
            return True
        # exact match only: an older remote marker is a change too
        doc = self.sink.find(self.entity, key, projection=[self.marker_field])
        if doc is None:
            return True
        return marker(doc.get(self.marker_field)) != remote

import logging
from typing import Any, Dict, List, Optional

from ..api import CamaraApi
from ..controller import ResourceCrawler
from ..errors import FetchError
from ..models import SinkPlan, SinkWrite, SourceRecord, utcnow
from ..paginate import PageFetch, store_page_source
from ..sink import DEPUTY, PROPOSITION, VOTE, UpsertSink
from .common import as_datetime, as_int, as_str, deputy_link, obj, sha256_hex

logger = logging.getLogger(__name__)

YES = "Sim"
NO = "Não"
OTHER = "Outros"


def normalize_vote(raw: Any) -> str:
    s = as_str(raw)
    if s == YES:
        return YES
    if s == NO:
        return NO
    return OTHER


def votings_version(votings: List[Dict[str, Any]]) -> str:
    """Fingerprint of the votings list: ids plus their registration timestamps."""
    pairs = sorted((str(v.get("id")), str(v.get("dataHoraRegistro") or "")) for v in votings)
    return sha256_hex(pairs)


class VotesCrawler(ResourceCrawler):
    name = "votes"
    entity = PROPOSITION
    marker_field = "votes_version"

    def __init__(self, sink: UpsertSink):
        self.sink = sink

    def page_source(self, api: CamaraApi) -> PageFetch:
        return store_page_source(
            self.sink.collection(PROPOSITION),
            "proposition_id",
            self.to_record,
            projection={"_id": 0, "proposition_id": 1, "type_code": 1},
        )

    @staticmethod
    def to_record(doc: Dict[str, Any]) -> SourceRecord:
        return SourceRecord(remote_id=as_int(doc.get("proposition_id")), payload=doc)

    async def fetch_details(self, api: CamaraApi, record: SourceRecord) -> Dict[str, Any]:
        return {"votings": await api.proposition_votings(record.remote_id)}

    def remote_version(self, record: SourceRecord, details: Dict[str, Any]) -> Optional[str]:
        return votings_version(details["votings"])

    async def enrich(self, api: CamaraApi, record: SourceRecord, details: Dict[str, Any]) -> Dict[str, Any]:
        complete = True
        ballots = []
        for voting in details["votings"]:
            voting_id = as_str(voting.get("id"))
            if not voting_id:
                continue
            try:
                votes = await api.voting_votes(voting_id)
            except FetchError as e:
                complete = False
                logger.warning(f"VOTING_FAIL: proposition={record.remote_id} voting={voting_id} err={e}")
                continue
            if votes:
                ballots.append((voting, votes))

        details["ballots"] = ballots
        details["complete"] = complete
        return details

    def transform(self, record: SourceRecord, details: Dict[str, Any]) -> SinkPlan:
        proposition_id = record.remote_id
        proposition_type = as_str(record.payload.get("type_code"))

        votes: List[SinkWrite] = []
        deputies: Dict[int, SinkWrite] = {}
        total_yes = 0
        total_no = 0

        for voting, rows in details.get("ballots", []):
            voting_id = as_str(voting.get("id"))
            for v in rows:
                dep = obj(v, "deputado_")
                deputy_id = as_int(dep.get("id"))
                if deputy_id is None:
                    continue

                value = normalize_vote(v.get("tipoVoto"))
                if value == YES:
                    total_yes += 1
                elif value == NO:
                    total_no += 1

                votes.append(SinkWrite(VOTE, (voting_id, deputy_id, proposition_id), {
                    "deputy_name": as_str(dep.get("nome")),
                    "party": as_str(dep.get("siglaPartido")),
                    "state": as_str(dep.get("siglaUf")),
                    "proposition_type": proposition_type,
                    "vote": value,
                    "raw_vote": as_str(v.get("tipoVoto")),
                    "registered_at": as_datetime(v.get("dataRegistroVoto")),
                }))

                deputies[deputy_id] = SinkWrite(DEPUTY, deputy_id, {
                    "name": as_str(dep.get("nome")),
                    "party": as_str(dep.get("siglaPartido")),
                    "state": as_str(dep.get("siglaUf")),
                    "link": deputy_link(deputy_id),
                })

        summary = {
            "votes_version": record.remote_version,
            "votes_processed_at": utcnow(),
            "votings_count": len(details.get("votings", [])),
            "total_yes": total_yes,
            "total_no": total_no,
        }

        return SinkPlan(
            primary=SinkWrite(PROPOSITION, proposition_id, summary),
            related=list(deputies.values()) + votes,
            marker_fields=("votes_version",),
            complete=bool(details.get("complete", True)),
        )

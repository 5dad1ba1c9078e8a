from typing import Any, Dict, List, Mapping, Optional

from ..api import CamaraApi
from ..controller import ResourceCrawler
from ..models import SinkPlan, SinkWrite, SourceRecord, marker, utcnow
from ..paginate import PageFetch, api_page_source
from ..sink import DEPUTY, PROPOSITION
from .common import as_datetime, as_int, as_str, deputy_link, id_from_uri, obj, proposition_link

DEFAULT_PARAMS = {
    "siglaTipo": ["PEC", "PL"],
    "dataApresentacaoInicio": "2018-01-01",
}


def author_entry(a: Dict[str, Any]) -> Dict[str, Any]:
    deputy_id = as_int(a.get("idDeputadoAutor")) or id_from_uri(a.get("uri"), "deputados")
    return {
        "deputy_id": deputy_id,
        "name": as_str(a.get("nome")),
        "type": as_str(a.get("tipo")),
        "signing_order": as_int(a.get("ordemAssinatura")),
        "proponent": as_int(a.get("proponente")) == 1,
        "link": deputy_link(deputy_id) if deputy_id else as_str(a.get("uri")),
    }


def keywords(raw: Any) -> List[str]:
    s = as_str(raw)
    if not s:
        return []
    return [k.strip() for k in s.split(",") if k.strip()]


class PropositionsCrawler(ResourceCrawler):
    name = "propositions"
    entity = PROPOSITION

    def __init__(self, params: Optional[Mapping[str, Any]] = None):
        self.params = dict(params) if params else dict(DEFAULT_PARAMS)

    def page_source(self, api: CamaraApi) -> PageFetch:
        return api_page_source(lambda page, size: api.propositions_page(page, size, self.params), self.to_record)

    @staticmethod
    def to_record(row: Dict[str, Any]) -> SourceRecord:
        return SourceRecord(remote_id=as_int(row.get("id")), payload=row)

    async def fetch_details(self, api: CamaraApi, record: SourceRecord) -> Dict[str, Any]:
        return {"proposition": await api.proposition(record.remote_id)}

    def remote_version(self, record: SourceRecord, details: Dict[str, Any]) -> Optional[str]:
        return marker(obj(details["proposition"], "statusProposicao").get("dataHora"))

    async def enrich(self, api: CamaraApi, record: SourceRecord, details: Dict[str, Any]) -> Dict[str, Any]:
        details["authors"] = await api.proposition_authors(record.remote_id)
        return details

    def transform(self, record: SourceRecord, details: Dict[str, Any]) -> SinkPlan:
        prop = details["proposition"]
        row = record.payload
        status = obj(prop, "statusProposicao")
        proposition_id = record.remote_id
        authors = [author_entry(a) for a in details.get("authors", [])]

        fields = {
            "proposition_id": proposition_id,
            "type_code": as_str(prop.get("siglaTipo")) or as_str(row.get("siglaTipo")),
            "number": as_int(prop.get("numero")) or as_int(row.get("numero")),
            "year": as_int(prop.get("ano")) or as_int(row.get("ano")),
            "title": as_str(prop.get("ementa")) or as_str(row.get("ementa")),
            "type_description": as_str(prop.get("descricaoTipo")),
            "keywords": keywords(prop.get("keywords")),
            "date_presented": as_datetime(prop.get("dataApresentacao")),
            "status": as_str(status.get("descricaoSituacao")) or as_str(status.get("descricaoTramitacao")),
            "status_detail": {
                "situation": as_str(status.get("descricaoSituacao")),
                "procedure": as_str(status.get("descricaoTramitacao")),
                "body_short": as_str(status.get("siglaOrgao")),
                "body": as_str(status.get("descricaoOrgao")),
                "dispatch": as_str(status.get("despacho")),
                "date_time": as_datetime(status.get("dataHora")),
            },
            "authors": authors,
            "full_text_url": as_str(prop.get("urlInteiroTeor")),
            "link": proposition_link(proposition_id),
            "scope": "federal",
            "remote_version": record.remote_version,
            "date_processed": utcnow(),
        }

        related = [
            SinkWrite(DEPUTY, a["deputy_id"], {"name": a["name"], "link": a["link"]})
            for a in authors
            if a["deputy_id"]
        ]

        return SinkPlan(
            primary=SinkWrite(PROPOSITION, proposition_id, fields),
            related=related,
            marker_fields=("remote_version",),
        )

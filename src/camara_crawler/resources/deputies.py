from typing import Any, Dict, Mapping, Optional

from ..api import CamaraApi
from ..controller import ResourceCrawler
from ..models import SinkPlan, SinkWrite, SourceRecord, marker, utcnow
from ..paginate import PageFetch, api_page_source
from ..sink import DEPUTY
from .common import as_datetime, as_int, as_list, as_str, deputy_link, obj


class DeputiesCrawler(ResourceCrawler):
    name = "deputies"
    entity = DEPUTY

    def __init__(self, params: Optional[Mapping[str, Any]] = None):
        self.params = dict(params or {})

    def page_source(self, api: CamaraApi) -> PageFetch:
        return api_page_source(lambda page, size: api.deputies_page(page, size, self.params), self.to_record)

    @staticmethod
    def to_record(row: Dict[str, Any]) -> SourceRecord:
        return SourceRecord(remote_id=as_int(row.get("id")), payload=row)

    async def fetch_details(self, api: CamaraApi, record: SourceRecord) -> Dict[str, Any]:
        return {"deputy": await api.deputy(record.remote_id)}

    def remote_version(self, record: SourceRecord, details: Dict[str, Any]) -> Optional[str]:
        # date of the deputy's latest status change
        return marker(obj(details["deputy"], "ultimoStatus").get("data"))

    def transform(self, record: SourceRecord, details: Dict[str, Any]) -> SinkPlan:
        info = details["deputy"]
        status = obj(info, "ultimoStatus")
        office = obj(status, "gabinete")
        deputy_id = record.remote_id

        fields = {
            "deputy_id": deputy_id,
            "name": as_str(status.get("nome")) or as_str(record.payload.get("nome")),
            "electoral_name": as_str(status.get("nomeEleitoral")),
            "civil_name": as_str(info.get("nomeCivil")),
            "party": as_str(status.get("siglaPartido")),
            "state": as_str(status.get("siglaUf")),
            "email": as_str(office.get("email")) or as_str(status.get("email")),
            "phone": as_str(office.get("telefone")),
            "photo_url": as_str(status.get("urlFoto")),
            "gender": as_str(info.get("sexo")),
            "birth_date": as_datetime(info.get("dataNascimento")),
            "birth_state": as_str(info.get("ufNascimento")),
            "birth_city": as_str(info.get("municipioNascimento")),
            "education": as_str(info.get("escolaridade")),
            "status": as_str(status.get("situacao")),
            "electoral_condition": as_str(status.get("condicaoEleitoral")),
            "legislature_id": as_int(status.get("idLegislatura")),
            "office": {
                "name": as_str(office.get("nome")),
                "building": as_str(office.get("predio")),
                "room": as_str(office.get("sala")),
                "floor": as_str(office.get("andar")),
                "phone": as_str(office.get("telefone")),
                "email": as_str(office.get("email")),
            } if office else None,
            "social_links": [x.strip() for x in as_list(info.get("redeSocial")) if isinstance(x, str) and x.strip()],
            "website": as_str(info.get("urlWebsite")),
            "link": deputy_link(deputy_id),
            "type": "federal",
            "remote_version": record.remote_version,
            "date_processed": utcnow(),
        }

        return SinkPlan(
            primary=SinkWrite(DEPUTY, deputy_id, fields),
            marker_fields=("remote_version",),
        )

import asyncio
from datetime import datetime

from camara_crawler.config import ResourceCfg
from camara_crawler.controller import CrawlController
from camara_crawler.resources import DeputiesCrawler, PropositionsCrawler, VotesCrawler, build_crawler
from camara_crawler.resources.common import id_from_uri
from camara_crawler.resources.propositions import DEFAULT_PARAMS, author_entry, keywords
from camara_crawler.resources.votes import NO, OTHER, YES, normalize_vote, votings_version

from fakes import FakeApi, api_factory


DEPUTY_DETAIL = {
    "id": 204554,
    "nomeCivil": "FULANO DE TAL",
    "sexo": "M",
    "dataNascimento": "1970-05-01",
    "ufNascimento": "SP",
    "municipioNascimento": "Campinas",
    "escolaridade": "Superior",
    "urlWebsite": None,
    "redeSocial": ["https://twitter.com/fulano", ""],
    "ultimoStatus": {
        "id": 204554,
        "nome": "Fulano",
        "nomeEleitoral": "Fulano de Tal",
        "siglaPartido": "PT",
        "siglaUf": "SP",
        "idLegislatura": 57,
        "urlFoto": "https://www.camara.leg.br/internet/deputado/bandep/204554.jpg",
        "data": "2023-02-01",
        "situacao": "Exercício",
        "condicaoEleitoral": "Titular",
        "gabinete": {
            "nome": "301",
            "predio": "4",
            "sala": "301",
            "andar": "3",
            "telefone": "3215-5301",
            "email": "dep.fulano@camara.leg.br",
        },
    },
}

PROPOSITION_DETAIL = {
    "id": 2265603,
    "siglaTipo": "PL",
    "numero": 1234,
    "ano": 2021,
    "ementa": "Dispõe sobre ...",
    "descricaoTipo": "Projeto de Lei",
    "keywords": "saúde, educação ,",
    "dataApresentacao": "2021-03-04T10:15",
    "urlInteiroTeor": "https://www.camara.leg.br/proposicoesWeb/prop_mostrarintegra?codteor=1",
    "statusProposicao": {
        "dataHora": "2021-05-12T21:10",
        "siglaOrgao": "PLEN",
        "descricaoOrgao": "Plenário",
        "descricaoTramitacao": "Votação",
        "descricaoSituacao": "Aguardando Sanção",
        "despacho": "Aprovado",
    },
}

AUTHORS = [
    {"uri": "https://dadosabertos.camara.leg.br/api/v2/deputados/204554", "nome": "Fulano", "tipo": "Deputado", "ordemAssinatura": 1, "proponente": 1},
    {"uri": "https://dadosabertos.camara.leg.br/api/v2/orgaos/180", "nome": "Senado Federal", "tipo": "Órgão", "ordemAssinatura": 2, "proponente": 0},
]


def _vote(deputy_id, tipo, nome="Dep"):
    return {
        "tipoVoto": tipo,
        "dataRegistroVoto": "2021-05-12T21:05:00",
        "deputado_": {"id": deputy_id, "nome": nome, "siglaPartido": "PT", "siglaUf": "SP"},
    }


def _run(crawler, sink, api, page_size=20):
    ctl = CrawlController(crawler, sink, api_factory(api), page_size=page_size)
    return asyncio.run(ctl.run())


# ------------------------- deputies -------------------------

def test_deputies_crawl_writes_full_record_and_skips_unchanged(sink, db):
    api = FakeApi(deputies_pages=[[{"id": 204554, "nome": "Fulano"}]], deputies={204554: DEPUTY_DETAIL})

    status = _run(DeputiesCrawler(), sink, api)

    assert status.processed == 1 and status.failed == 0
    doc = db["deputies"].get(deputy_id=204554)
    assert doc["name"] == "Fulano"
    assert doc["party"] == "PT"
    assert doc["email"] == "dep.fulano@camara.leg.br"
    assert doc["office"]["room"] == "301"
    assert doc["social_links"] == ["https://twitter.com/fulano"]
    assert doc["birth_date"] == datetime(1970, 5, 1)
    assert doc["legislature_id"] == 57
    assert doc["remote_version"] == "2023-02-01"
    assert doc["link"] == "https://www.camara.leg.br/deputados/204554"

    status = _run(DeputiesCrawler(), sink, api)
    assert status.unchanged == 1
    assert db["deputies"].update_calls == 1


# ------------------------- propositions -------------------------

def test_author_entry_and_keywords():
    a = author_entry(AUTHORS[0])
    assert a["deputy_id"] == 204554
    assert a["proponent"] is True
    b = author_entry(AUTHORS[1])
    assert b["deputy_id"] is None
    assert b["link"] == AUTHORS[1]["uri"]
    assert keywords("saúde, educação ,") == ["saúde", "educação"]
    assert keywords(None) == []
    assert id_from_uri("https://x/api/v2/orgaos/180", "deputados") is None


def test_propositions_crawl_coupserts_authors_without_clobbering(sink, db):
    db["deputies"].docs.append({
        "deputy_id": 204554,
        "name": "Fulano",
        "email": "dep.fulano@camara.leg.br",
        "remote_version": "2023-02-01",
    })
    api = FakeApi(
        propositions_pages=[[{"id": 2265603, "siglaTipo": "PL", "numero": 1234, "ano": 2021}]],
        propositions={2265603: PROPOSITION_DETAIL},
        authors={2265603: AUTHORS},
    )

    status = _run(PropositionsCrawler(), sink, api)

    assert status.processed == 1 and status.failed == 0
    prop = db["propositions"].get(proposition_id=2265603)
    assert prop["type_code"] == "PL"
    assert prop["keywords"] == ["saúde", "educação"]
    assert prop["status"] == "Aguardando Sanção"
    assert prop["status_detail"]["body_short"] == "PLEN"
    assert prop["remote_version"] == "2021-05-12T21:10"
    assert [a["deputy_id"] for a in prop["authors"]] == [204554, None]

    dep = db["deputies"].get(deputy_id=204554)
    assert dep["email"] == "dep.fulano@camara.leg.br"
    assert dep["remote_version"] == "2023-02-01"
    assert len(db["deputies"].docs) == 1

    # listing parameters go upstream untouched
    assert api.calls[0] == ("propositions_page", 1, DEFAULT_PARAMS)


def test_unchanged_proposition_skips_author_fetch(sink, db):
    api = FakeApi(
        propositions_pages=[[{"id": 2265603}]],
        propositions={2265603: PROPOSITION_DETAIL},
        authors={2265603: AUTHORS},
    )
    _run(PropositionsCrawler(), sink, api)
    api.calls.clear()

    status = _run(PropositionsCrawler({"siglaTipo": "PEC"}), sink, api)

    assert status.unchanged == 1
    assert ("authors", 2265603) not in api.calls
    assert api.calls[0] == ("propositions_page", 1, {"siglaTipo": "PEC"})


# ------------------------- votes -------------------------

def test_normalize_vote():
    assert normalize_vote("Sim") == YES
    assert normalize_vote(" Não ") == NO
    assert normalize_vote("Obstrução") == OTHER
    assert normalize_vote(None) == OTHER


def test_votings_version_ignores_order():
    a = [{"id": "1-1", "dataHoraRegistro": "x"}, {"id": "1-2", "dataHoraRegistro": "y"}]
    assert votings_version(a) == votings_version(list(reversed(a)))
    assert votings_version(a) != votings_version(a[:1])


def _votes_fixture(db, failing=()):
    db["propositions"].docs.append({"proposition_id": 2265603, "type_code": "PL", "title": "PL 1234/2021"})
    db["propositions"].docs.append({"proposition_id": 2265700, "type_code": "PEC", "title": "PEC 1/2021"})
    return FakeApi(
        votings={
            2265603: [
                {"id": "2265603-43", "dataHoraRegistro": "2021-05-12T21:10:12"},
                {"id": "2265603-50", "dataHoraRegistro": "2021-05-13T10:00:00"},
            ],
        },
        votes={
            "2265603-43": [_vote(1, "Sim", "A"), _vote(2, "Não", "B"), _vote(3, "Abstenção", "C"), {"tipoVoto": "Sim"}],
            "2265603-50": [_vote(1, "Sim", "A")],
        },
        failing_votings=failing,
    )


def test_votes_crawl_writes_votes_totals_and_marker(sink, db):
    api = _votes_fixture(db)

    status = _run(VotesCrawler(sink), sink, api)

    assert status.processed == 2 and status.failed == 0

    prop = db["propositions"].get(proposition_id=2265603)
    assert prop["title"] == "PL 1234/2021"
    assert prop["total_yes"] == 2
    assert prop["total_no"] == 1
    assert prop["votings_count"] == 2
    assert prop["votes_version"] == votings_version(api.votings[2265603])

    votes = db["votes"].docs
    assert len(votes) == 4
    v = db["votes"].get(voting_id="2265603-43", deputy_id=3, proposition_id=2265603)
    assert v["vote"] == OTHER
    assert v["raw_vote"] == "Abstenção"
    assert v["proposition_type"] == "PL"

    assert {d["deputy_id"] for d in db["deputies"].docs} == {1, 2, 3}

    # proposition without votings still gets a summary
    empty = db["propositions"].get(proposition_id=2265700)
    assert empty["votings_count"] == 0
    assert empty["votes_version"] == votings_version([])

    status = _run(VotesCrawler(sink), sink, api)
    assert status.unchanged == 2


def test_failing_voting_withholds_votes_marker(sink, db):
    api = _votes_fixture(db, failing={"2265603-50"})

    status = _run(VotesCrawler(sink), sink, api)

    assert status.failed == 1
    prop = db["propositions"].get(proposition_id=2265603)
    assert "votes_version" not in prop
    # what could be fetched is still stored
    assert len(db["votes"].docs) == 3

    api.failing_votings.clear()
    status = _run(VotesCrawler(sink), sink, api)
    assert status.processed == 1
    assert status.unchanged == 1
    assert db["propositions"].get(proposition_id=2265603)["votes_version"]


def test_build_crawler_dispatch(sink):
    assert isinstance(build_crawler(ResourceCfg("deputies"), sink), DeputiesCrawler)
    props = build_crawler(ResourceCfg("propositions"), sink)
    assert props.params == DEFAULT_PARAMS
    assert isinstance(build_crawler(ResourceCfg("votes"), sink), VotesCrawler)

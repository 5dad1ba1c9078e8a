from ..config import ResourceCfg
from ..controller import ResourceCrawler
from ..sink import UpsertSink
from .deputies import DeputiesCrawler
from .propositions import PropositionsCrawler
from .votes import VotesCrawler


def build_crawler(cfg: ResourceCfg, sink: UpsertSink) -> ResourceCrawler:
    if cfg.name == "deputies":
        return DeputiesCrawler(cfg.params)
    if cfg.name == "propositions":
        return PropositionsCrawler(cfg.params)
    if cfg.name == "votes":
        return VotesCrawler(sink)
    raise ValueError(f"Unknown resource: {cfg.name}")


__all__ = ["build_crawler", "DeputiesCrawler", "PropositionsCrawler", "VotesCrawler"]

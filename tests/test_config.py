from pathlib import Path

import pytest
from pydantic import ValidationError

from api_doc_scraper.config import AppConfig, CrawlMode, TriageConfig


class TestAppConfig:
    def test_defaults(self):
        config = AppConfig()
        assert config.crawl.mode == CrawlMode.INTELLIGENT
        assert config.crawl.max_pages == 30
        assert config.fetcher.timeout_ms == 60000
        assert config.map.limit == 5000
        assert config.triage.min_selected_pages == 3
        assert config.extraction.chunk_threshold == 100_000
        assert config.generation.default_cache_ttl == 300
        assert config.job.min_endpoints_for_cache == 1

    def test_rejects_out_of_range(self):
        with pytest.raises(ValidationError):
            TriageConfig(max_attempts=0)

    def test_from_toml(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text(
            'verbose = true\n'
            '\n[crawl]\nmode = "bfs"\nmax_pages = 12\n'
            '\n[llm]\nmodel = "gpt-4o"\n'
        )
        config = AppConfig.from_toml(path)
        assert config.verbose is True
        assert config.crawl.mode == CrawlMode.BFS
        assert config.crawl.max_pages == 12
        assert config.llm.model == "gpt-4o"
        assert config.fetcher.only_main_content is True

    def test_toml_round_trip_keeps_overrides(self, tmp_path):
        config = AppConfig()
        config.crawl.max_pages = 7
        config.rate_limit.delay_seconds = 0.0
        path = tmp_path / "out.toml"
        path.write_text(config.to_toml())

        loaded = AppConfig.from_toml(path)
        assert loaded.crawl.max_pages == 7
        assert loaded.rate_limit.delay_seconds == 0.0

    def test_cache_dir_is_path(self):
        assert isinstance(AppConfig().job.cache_dir, Path)

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
        populate_by_name=True,
    )

    app_name: str = 'Reclaim Journal Export'

    data_dir: Path = Field(default=Path('./data'))

    # Branding (header + footer)
    brand_title: str = 'Reclaim Journal Export'
    brand_site_url: str = Field(
        default='',
        validation_alias=AliasChoices('BRAND_SITE_URL', 'NEXT_PUBLIC_SITE_URL', 'BRAND_SITE'),
    )
    brand_logo_path: Path | None = None
    brand_logo_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices('BRAND_LOGO_PNG_URL', 'BRAND_LOGO_URL'),
    )
    brand_logo_timeout_seconds: int = 10

    # Blob storage: 'local' serves files under data_dir/blobs, 'http' talks to a storage gateway
    blob_backend: str = 'local'
    blob_base_url: str | None = None
    blob_api_key: str | None = None
    blob_timeout_seconds: int = 30
    blob_signing_secret: str = 'change-me'
    signed_url_ttl_seconds: int = 3600
    public_base_url: str = 'http://127.0.0.1:8080'

    # Tier gating for the paged (PDF) format
    paged_export_tiers: str = 'recovery,empowerment'
    default_tier: str = 'foundation'

    # Transcript bounds
    transcript_max_lines: int = 12
    bubble_max_lines: int = 8
    transcript_snippet_chars: int = 600

    # PDF geometry, in points (A4 portrait)
    pdf_page_width: float = 595.28
    pdf_page_height: float = 841.89
    pdf_page_margin: float = 50
    pdf_line_height: float = 16
    pdf_block_gap: float = 4
    pdf_section_gap: float = 10
    pdf_footer_offset: float = 24

    # PDF fonts. TTF paths are optional; standard Helvetica is used otherwise.
    pdf_font_name: str = 'Helvetica'
    pdf_bold_font_name: str = 'Helvetica-Bold'
    pdf_font_path: Path | None = None
    pdf_bold_font_path: Path | None = None
    pdf_body_font_size: float = 12
    pdf_title_font_size: float = 20
    pdf_heading_font_size: float = 14

    # HTTP server
    server_host: str = '0.0.0.0'
    server_port: int = 8080

    def paged_tiers(self) -> set[str]:
        tiers: set[str] = set()
        for item in self.paged_export_tiers.split(','):
            normalized = item.strip().lower()
            if not normalized:
                continue
            tiers.add(normalized)
        return tiers

    def can_export_paged(self, tier: str | None) -> bool:
        normalized = str(tier or self.default_tier).strip().lower()
        return normalized in self.paged_tiers()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    (settings.data_dir / 'entries').mkdir(parents=True, exist_ok=True)
    (settings.data_dir / 'profiles').mkdir(parents=True, exist_ok=True)
    (settings.data_dir / 'blobs').mkdir(parents=True, exist_ok=True)
    return settings

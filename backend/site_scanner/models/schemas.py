import enum
import uuid
from typing import Any, Dict, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Unset(enum.Enum):
    NOT_EVALUATED = "not_evaluated"

    def __repr__(self) -> str:
        return "NOT_EVALUATED"


# The analyzer owning the field did not run, or its precondition failed.
NOT_EVALUATED = Unset.NOT_EVALUATED

T = TypeVar("T")

# Three states per field: NOT_EVALUATED / None (evaluated, confirmed absent) / value.
Tri = Union[T, None, Unset]


def is_evaluated(value: Any) -> bool:
    return value is not NOT_EVALUATED


class ScanStatus(str, enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> Dict[str, Any]:
        """
        Storage-boundary form: camelCase keys, NOT_EVALUATED fields omitted,
        confirmed absence kept as an explicit null.
        """
        out: Dict[str, Any] = {}
        dumped = self.model_dump(mode="json", by_alias=True)
        for name, info in type(self).model_fields.items():
            if getattr(self, name) is NOT_EVALUATED:
                continue
            key = info.alias or name
            out[key] = dumped[key]
        return out


class ScanRequest(_Record):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    website_id: int
    target_url: str
    scan_id: str = Field(default_factory=lambda: str(uuid.uuid4()))


class CoreResult(_Record):
    website_id: int
    status: Optional[ScanStatus] = None

    target_url_base_domain: Tri[str] = NOT_EVALUATED
    target_url_redirects: Tri[bool] = NOT_EVALUATED
    target_url_404_test: Tri[bool] = NOT_EVALUATED
    final_url: Tri[str] = NOT_EVALUATED
    final_url_base_domain: Tri[str] = NOT_EVALUATED
    final_url_status_code: Tri[int] = NOT_EVALUATED
    final_url_mime_type: Tri[str] = Field(default=NOT_EVALUATED, alias="finalUrlMIMEType")
    final_url_is_live: Tri[bool] = NOT_EVALUATED
    final_url_same_domain: Tri[bool] = NOT_EVALUATED
    final_url_same_website: Tri[bool] = NOT_EVALUATED


class SolutionsResult(_Record):
    website_id: int

    # robots.txt
    robots_txt_detected: Tri[bool] = NOT_EVALUATED
    robots_txt_status_code: Tri[int] = NOT_EVALUATED
    robots_txt_final_url: Tri[str] = NOT_EVALUATED
    robots_txt_final_url_live: Tri[bool] = NOT_EVALUATED
    robots_txt_final_url_mime_type: Tri[str] = NOT_EVALUATED
    robots_txt_final_url_size: Tri[int] = NOT_EVALUATED
    robots_txt_target_url_redirects: Tri[bool] = NOT_EVALUATED
    robots_txt_crawl_delay: Tri[float] = NOT_EVALUATED
    robots_txt_sitemap_locations: Tri[str] = NOT_EVALUATED

    # sitemap.xml
    sitemap_xml_detected: Tri[bool] = NOT_EVALUATED
    sitemap_target_url_redirects: Tri[bool] = NOT_EVALUATED
    sitemap_xml_final_url: Tri[str] = NOT_EVALUATED
    sitemap_xml_final_url_live: Tri[bool] = NOT_EVALUATED
    sitemap_xml_status_code: Tri[int] = NOT_EVALUATED
    sitemap_xml_final_url_mime_type: Tri[str] = NOT_EVALUATED
    sitemap_xml_final_url_filesize: Tri[int] = NOT_EVALUATED
    sitemap_xml_count: Tri[int] = NOT_EVALUATED
    sitemap_xml_pdf_count: Tri[int] = NOT_EVALUATED

    # rendered content
    main_element_final_url: Tri[bool] = NOT_EVALUATED
    og_title_final_url: Tri[str] = NOT_EVALUATED
    og_description_final_url: Tri[str] = NOT_EVALUATED
    og_article_published_final_url: Tri[str] = NOT_EVALUATED
    og_article_modified_final_url: Tri[str] = NOT_EVALUATED
    dap_detected: Tri[bool] = NOT_EVALUATED
    dap_parameters: Tri[str] = NOT_EVALUATED
    third_party_service_domains: Tri[str] = NOT_EVALUATED
    third_party_service_count: Tri[int] = NOT_EVALUATED

    # USWDS fingerprint
    uswds_string: Tri[int] = NOT_EVALUATED
    uswds_string_in_css: Tri[int] = NOT_EVALUATED
    usa_classes: Tri[int] = NOT_EVALUATED
    uswds_tables: Tri[int] = NOT_EVALUATED
    uswds_us_flag: Tri[int] = NOT_EVALUATED
    uswds_us_flag_in_css: Tri[int] = NOT_EVALUATED
    uswds_public_sans_font: Tri[int] = NOT_EVALUATED
    uswds_source_sans_font: Tri[int] = NOT_EVALUATED
    uswds_merriweather_font: Tri[int] = NOT_EVALUATED
    uswds_inline_css: Tri[int] = NOT_EVALUATED
    uswds_count: Tri[int] = NOT_EVALUATED
    uswds_version: Tri[int] = NOT_EVALUATED
    uswds_semantic_version: Tri[str] = NOT_EVALUATED


SOLUTIONS_FIELDS = frozenset(n for n in SolutionsResult.model_fields if n != "website_id")


class ScanResult(BaseModel):
    scan_id: str
    core_result: CoreResult
    solutions_result: SolutionsResult
    failure_reason: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        record = {
            "scanId": self.scan_id,
            "coreResult": self.core_result.to_record(),
            "solutionsResult": self.solutions_result.to_record(),
        }
        if self.failure_reason:
            record["failureReason"] = self.failure_reason
        return record

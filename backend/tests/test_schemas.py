from site_scanner.models.schemas import (
    NOT_EVALUATED,
    CoreResult,
    ScanRequest,
    ScanResult,
    ScanStatus,
    SolutionsResult,
    is_evaluated,
)


class TestTriState:
    def test_fields_start_not_evaluated(self):
        solutions = SolutionsResult(website_id=7)
        assert solutions.og_title_final_url is NOT_EVALUATED
        assert not is_evaluated(solutions.uswds_count)

    def test_record_keeps_the_three_states_apart(self):
        solutions = SolutionsResult(
            website_id=7,
            og_title_final_url=None,
            og_description_final_url="About us",
            uswds_count=0,
            dap_detected=False,
        )
        record = solutions.to_record()
        assert record["ogTitleFinalUrl"] is None
        assert record["ogDescriptionFinalUrl"] == "About us"
        assert record["uswdsCount"] == 0
        assert record["dapDetected"] is False
        assert "ogArticleModifiedFinalUrl" not in record
        assert record["websiteId"] == 7

    def test_json_dump_names_the_sentinel(self):
        dumped = CoreResult(website_id=1).model_dump(mode="json", by_alias=True)
        assert dumped["finalUrl"] == "not_evaluated"
        assert dumped["status"] is None

    def test_aliases(self):
        core = CoreResult(website_id=1, final_url_mime_type="text/html", target_url_404_test=True,
                          status=ScanStatus.COMPLETED)
        record = core.to_record()
        assert record == {
            "websiteId": 1,
            "status": "completed",
            "targetUrl404Test": True,
            "finalUrlMIMEType": "text/html",
        }


def test_scan_request_accepts_camel_case_and_generates_id():
    req = ScanRequest.model_validate({"websiteId": 3, "targetUrl": "18f.gov"})
    assert req.website_id == 3
    assert req.target_url == "18f.gov"
    assert req.scan_id


def test_scan_result_record():
    result = ScanResult(
        scan_id="abc",
        core_result=CoreResult(website_id=1, status=ScanStatus.FAILED),
        solutions_result=SolutionsResult(website_id=1),
        failure_reason="timeout",
    )
    assert result.to_record() == {
        "scanId": "abc",
        "coreResult": {"websiteId": 1, "status": "failed"},
        "solutionsResult": {"websiteId": 1},
        "failureReason": "timeout",
    }

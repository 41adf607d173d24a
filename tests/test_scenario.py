"""Tests for request template rendering."""

import json

from rampload.models import RequestStep
from rampload.scenario import render_step, render_template


class TestRenderTemplate:
    def test_substitutes_vu_and_iteration(self):
        assert render_template("ORDER-${vu}-${iter}", 7, 3) == "ORDER-7-3"

    def test_unknown_placeholders_are_kept(self):
        assert render_template("${vu}-${tenant}", 1, 0) == "1-${tenant}"

    def test_dollar_sequences_are_literal(self):
        assert render_template("token$$x", 1, 0) == "token$$x"
        assert render_template("$vu $${iter} ${iter}", 2, 5) == "$vu $5 5"

    def test_plain_text_untouched(self):
        assert render_template("/health", 1, 0) == "/health"


class TestRenderStep:
    def test_relative_url_joined_to_base(self):
        step = RequestStep(method="GET", url="/api/v1/orders/ORDER-${vu}-0")
        url, headers, body = render_step(step, "http://svc:8082", 4, 9)
        assert url == "http://svc:8082/api/v1/orders/ORDER-4-0"
        assert headers == {}
        assert body is None

    def test_absolute_url_ignores_base(self):
        step = RequestStep(method="GET", url="https://other/health")
        url, _, _ = render_step(step, "http://svc:8082", 1, 0)
        assert url == "https://other/health"

    def test_structured_body_is_rendered_and_json_encoded(self):
        step = RequestStep(
            method="POST",
            url="/orders",
            body={
                "order_id": "ORDER-${vu}-${iter}",
                "items": [{"sku": "SKU-${iter}", "quantity": 2}],
                "priority": 0,
            },
        )
        _, headers, body = render_step(step, "http://svc", 2, 5)
        assert headers["Content-Type"] == "application/json"
        assert json.loads(body) == {
            "order_id": "ORDER-2-5",
            "items": [{"sku": "SKU-5", "quantity": 2}],
            "priority": 0,
        }

    def test_explicit_content_type_is_kept(self):
        step = RequestStep(
            method="POST",
            url="/orders",
            headers={"content-type": "application/vnd.api+json"},
            body={"id": "${vu}"},
        )
        _, headers, _ = render_step(step, "http://svc", 1, 0)
        assert headers == {"content-type": "application/vnd.api+json"}

    def test_headers_are_rendered(self):
        step = RequestStep(method="GET", url="/x", headers={"Idempotency-Key": "KEY-${vu}-${iter}"})
        _, headers, _ = render_step(step, "http://svc", 3, 1)
        assert headers == {"Idempotency-Key": "KEY-3-1"}

    def test_string_body_is_rendered(self):
        step = RequestStep(method="POST", url="/x", body="customer=CUSTOMER-${vu}")
        _, _, body = render_step(step, "http://svc", 8, 0)
        assert body == "customer=CUSTOMER-8"

    def test_step_is_not_mutated(self):
        step = RequestStep(method="POST", url="/x", body={"id": "${vu}"})
        render_step(step, "http://svc", 1, 0)
        assert step.headers == {}
        assert step.body == {"id": "${vu}"}

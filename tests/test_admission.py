"""Tests for server/admission.py and server/app.py modules."""

import base64
import json
from unittest.mock import MagicMock, patch

import jsonpatch
import pytest
from conftest import admission_review, write_policy

from tfo_plugin_manager.exceptions import RelayError
from tfo_plugin_manager.mutation.policy import MutationPolicyLoader
from tfo_plugin_manager.mutation.schema import SchemaRegistry
from tfo_plugin_manager.relay import CredentialRelay
from tfo_plugin_manager.server.admission import (
    InvalidReviewError,
    MalformedReviewError,
    MutationService,
    parse_review,
)
from tfo_plugin_manager.server.app import create_app


def decode_patch(response: dict) -> list:
    assert response["patchType"] == "JSONPatch"
    return json.loads(base64.b64decode(response["patch"]))


@pytest.fixture
def service(foo_policy):
    """MutationService over the 'foo' policy directory."""
    return MutationService(MutationPolicyLoader(foo_policy), SchemaRegistry.default())


@pytest.fixture
def relay():
    """Mock credential relay."""
    return MagicMock(spec=CredentialRelay)


@pytest.fixture
def client(service, relay):
    """Flask test client."""
    app = create_app(service, relay)
    app.testing = True
    return app.test_client()


class TestParseReview:
    """Tests for envelope validation."""

    def test_valid_review(self, terraform):
        """Test a well formed review is returned decoded."""
        review = parse_review(json.dumps(admission_review(terraform)).encode())
        assert review["request"]["object"]["metadata"]["name"] == "stack"

    @pytest.mark.parametrize("body", [b"not json", b"[]", b'{"kind": "Pod"}', b'{"kind": "AdmissionReview"}'])
    def test_invalid_review(self, body):
        """Test non-review bodies are rejected."""
        with pytest.raises(InvalidReviewError):
            parse_review(body)

    @pytest.mark.parametrize("body", [b"[]", b'{"kind": "Pod"}', b'{"kind": "AdmissionReview", "request": "x"}'])
    def test_json_but_not_a_review(self, body):
        """Test JSON bodies that are not reviews keep the decoded document."""
        with pytest.raises(MalformedReviewError) as exc_info:
            parse_review(body)

        assert exc_info.value.document == json.loads(body)

    def test_not_json_is_not_malformed_review(self):
        """Test a body that is not JSON at all raises the base error only."""
        with pytest.raises(InvalidReviewError) as exc_info:
            parse_review(b"not json")

        assert not isinstance(exc_info.value, MalformedReviewError)


class TestMutationService:
    """Tests for review handling."""

    def test_single_policy_patch(self, service, terraform):
        """Test the returned patch adds the plugin and its dedicated task option."""
        original = json.loads(json.dumps(terraform))

        result = service.review(admission_review(terraform, uid="abc"))

        assert result["apiVersion"] == "admission.k8s.io/v1"
        assert result["kind"] == "AdmissionReview"
        response = result["response"]
        assert response["uid"] == "abc"
        assert response["allowed"] is True
        patched = jsonpatch.apply_patch(original, decode_patch(response))
        assert patched["spec"]["plugins"]["foo"]["image"] == "ghcr.io/galleybytes/foo:1.0"
        assert patched["spec"]["taskOptions"] == [
            {"env": [{"name": "A", "value": "1"}], "for": ["foo"], "restartPolicy": "Always"}
        ]
        assert patched["status"] == original["status"]

    def test_already_mutated_resource_gets_empty_patch(self, service, terraform):
        """Test a second pass over the mutated object changes nothing."""
        first = service.review(admission_review(json.loads(json.dumps(terraform))))
        mutated = jsonpatch.apply_patch(terraform, decode_patch(first["response"]))

        second = service.review(admission_review(mutated))

        assert decode_patch(second["response"]) == []

    def test_skip_annotation_gives_empty_patch(self, service, terraform):
        """Test a skipped resource is approved without changes."""
        terraform["metadata"]["annotations"]["plugins.tf.galleybytes.com/skip-foo"] = "true"

        response = service.review(admission_review(terraform))["response"]

        assert response["allowed"] is True
        assert decode_patch(response) == []

    def test_unknown_resource(self, service):
        """Test other resources are approved with an empty patch."""
        review = admission_review({"kind": "Deployment"}, group="apps", version="v1")
        review["request"]["resource"]["resource"] = "deployments"

        response = service.review(review)["response"]

        assert response["allowed"] is True
        assert decode_patch(response) == []

    def test_undecodable_object(self, service):
        """Test a malformed object is approved with a diagnostic message."""
        review = admission_review({"kind": "Terraform", "spec": {"taskOptions": "nope"}})

        response = service.review(review)["response"]

        assert response["allowed"] is True
        assert "patch" not in response
        assert "taskOptions" in response["status"]["message"]

    def test_policy_error_gives_empty_patch(self, service, foo_policy, terraform):
        """Test a broken policy directory approves without changes."""
        (foo_policy / "broken.json").write_text("{")

        response = service.review(admission_review(terraform))["response"]

        assert response["allowed"] is True
        assert decode_patch(response) == []

    def test_malformed_policy_task_config_gives_empty_patch(self, service, foo_policy, terraform):
        """Test a policy whose env is not a list approves without changes."""
        write_policy(foo_policy, "bar.json", {"taskConfig": {"env": "A=1"}})
        terraform["spec"]["taskOptions"] = [{"for": ["foo"]}]

        response = service.review(admission_review(terraform))["response"]

        assert response["allowed"] is True
        assert decode_patch(response) == []

    def test_malformed_existing_task_option(self, service, terraform):
        """Test a resource task option whose labels are not a map gets a diagnostic message."""
        terraform["spec"]["taskOptions"] = [{"for": ["foo"], "labels": ["x"]}]

        response = service.review(admission_review(terraform))["response"]

        assert response["allowed"] is True
        assert "patch" not in response
        assert "'labels' must be a mapping" in response["status"]["message"]

    def test_apply_failure_gives_empty_patch(self, service, terraform):
        """Test an unexpected merge failure approves without changes."""
        with patch(
            "tfo_plugin_manager.server.admission.apply_policies", side_effect=AttributeError("'str' has no 'get'")
        ):
            response = service.review(admission_review(terraform))["response"]

        assert response["allowed"] is True
        assert decode_patch(response) == []

    def test_v1beta1_request(self, service):
        """Test the newer Terraform version is mutated by the same service."""
        document = {
            "apiVersion": "tf.galleybytes.com/v1beta1",
            "kind": "Terraform",
            "metadata": {"name": "stack"},
            "spec": {},
        }

        response = service.review(admission_review(document, group="tf.galleybytes.com", version="v1beta1"))

        patched = jsonpatch.apply_patch(document, decode_patch(response["response"]))
        assert list(patched["spec"]["plugins"]) == ["foo"]

    def test_policies_apply_in_name_order(self, service, foo_policy, terraform):
        """Test task options are appended in policy file name order."""
        write_policy(foo_policy, "aaa.json", {"pluginConfig": {"image": "aaa:1"}})
        write_policy(foo_policy, "zzz.yaml", {"pluginConfig": {"image": "zzz:1"}})
        original = json.loads(json.dumps(terraform))

        response = service.review(admission_review(terraform))["response"]

        patched = jsonpatch.apply_patch(original, decode_patch(response))
        assert [t["for"] for t in patched["spec"]["taskOptions"]] == [["aaa"], ["foo"], ["zzz"]]


class TestMutateRoute:
    """Tests for the /mutate HTTP route."""

    def test_mutate(self, client, terraform):
        """Test a JSON review gets a JSON review response."""
        response = client.post("/mutate", json=admission_review(terraform, uid="req-1"))

        assert response.status_code == 200
        assert response.is_json
        body = response.get_json()
        assert body["response"]["uid"] == "req-1"
        assert decode_patch(body["response"])

    def test_wrong_content_type(self, client, terraform):
        """Test a non-JSON content type is refused with 415 and no body."""
        response = client.post(
            "/mutate", data=json.dumps(admission_review(terraform)), content_type="text/plain"
        )

        assert response.status_code == 415
        assert response.data == b""

    def test_content_type_parameters_accepted(self, client, terraform):
        """Test a charset parameter on the content type is accepted."""
        response = client.post(
            "/mutate",
            data=json.dumps(admission_review(terraform)),
            content_type="application/json; charset=utf-8",
        )

        assert response.status_code == 200

    def test_malformed_body(self, client):
        """Test a body that is not JSON is rejected with 400."""
        response = client.post("/mutate", data="{", content_type="application/json")

        assert response.status_code == 400
        assert b"could not be decoded" in response.data

    def test_malformed_policy_does_not_fail_request(self, client, foo_policy, terraform):
        """Test a policy with a string env still gets a 200 review response."""
        write_policy(foo_policy, "bar.json", {"taskConfig": {"env": "A=1"}})
        terraform["spec"]["taskOptions"] = [{"for": ["foo"]}]

        response = client.post("/mutate", json=admission_review(terraform, uid="req-3"))

        assert response.status_code == 200
        body = response.get_json()["response"]
        assert body["uid"] == "req-3"
        assert body["allowed"] is True
        assert decode_patch(body) == []

    @pytest.mark.parametrize(
        ("document", "uid"),
        [
            ([], ""),
            ({"kind": "Pod"}, ""),
            ({"kind": "Pod", "request": {"uid": "req-2"}}, "req-2"),
            ({"kind": "AdmissionReview"}, ""),
        ],
    )
    def test_json_but_not_a_review(self, client, document, uid):
        """Test a JSON body that is not a review is approved with a diagnostic message."""
        response = client.post("/mutate", json=document)

        assert response.status_code == 200
        body = response.get_json()
        assert body["kind"] == "AdmissionReview"
        assert body["apiVersion"] == "admission.k8s.io/v1"
        assert body["response"]["uid"] == uid
        assert body["response"]["allowed"] is True
        assert "patch" not in body["response"]
        assert body["response"]["status"]["message"]

    def test_get_not_allowed(self, client):
        """Test only POST is routed."""
        assert client.get("/mutate").status_code == 405


class TestTokenRoute:
    """Tests for the /api-token-please HTTP route."""

    def test_token(self, client, relay):
        """Test the relay payload is returned as JSON."""
        relay.token_payload.return_value = {"host": "https://tfo-api:5001", "token": "t0k"}

        response = client.get("/api-token-please")

        assert response.status_code == 200
        assert response.get_json() == {"host": "https://tfo-api:5001", "token": "t0k"}

    def test_relay_failure(self, client, relay):
        """Test relay errors map to 502."""
        relay.token_payload.side_effect = RelayError("Request to https://tfo-api:5001/login failed")

        response = client.post("/api-token-please")

        assert response.status_code == 502
        assert "failed" in response.get_json()["error"]

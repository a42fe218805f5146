"""Admission review handling.

The MutationService turns an AdmissionReview request into an
AdmissionReview response carrying a JSON patch. Every failure inside a
request is turned into a safe, allowed response; nothing here raises to
the HTTP layer except a body that is not JSON at all.
"""

import base64
import json
from typing import Any

from icecream import ic

from tfo_plugin_manager import console
from tfo_plugin_manager.exceptions import PatchComputationError, PolicyError, ResourceDecodeError
from tfo_plugin_manager.models import GroupVersionResource
from tfo_plugin_manager.mutation.engine import apply_policies
from tfo_plugin_manager.mutation.patch import compute_patch
from tfo_plugin_manager.mutation.policy import MutationPolicyLoader
from tfo_plugin_manager.mutation.schema import SchemaRegistry

ADMISSION_API_VERSION = "admission.k8s.io/v1"
ADMISSION_KIND = "AdmissionReview"
PATCH_TYPE_JSON = "JSONPatch"


class InvalidReviewError(ValueError):
    """Raised when a request body is not an AdmissionReview request."""


class MalformedReviewError(InvalidReviewError):
    """Raised when a body is JSON but not an AdmissionReview carrying a request.

    Attributes:
        document: The decoded body.

    """

    def __init__(self, message: str, document: Any) -> None:
        super().__init__(message)
        self.document = document


def empty_patch_response() -> dict[str, Any]:
    """Allowed response with an explicit empty patch: approved, nothing to do."""
    return {"allowed": True, "patchType": PATCH_TYPE_JSON, "patch": base64.b64encode(b"[]").decode()}


def patch_response(operations: list[dict[str, Any]]) -> dict[str, Any]:
    """Allowed response carrying a JSON patch."""
    patch = json.dumps(operations, separators=(",", ":")).encode()
    return {"allowed": True, "patchType": PATCH_TYPE_JSON, "patch": base64.b64encode(patch).decode()}


def message_response(message: str) -> dict[str, Any]:
    """Allowed response without a patch, carrying a diagnostic status message."""
    return {"allowed": True, "status": {"message": message}}


def parse_review(body: bytes) -> dict[str, Any]:
    """Decode and sanity check an AdmissionReview request body.

    Args:
        body: The raw HTTP request body.

    Returns:
        The decoded review.

    Raises:
        InvalidReviewError: If the body is not JSON.
        MalformedReviewError: If the body is JSON but not an AdmissionReview with a request.

    """
    try:
        review = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidReviewError(f"Request could not be decoded: {e}") from e
    if not isinstance(review, dict):
        raise MalformedReviewError(f"Expected {ADMISSION_KIND} but got: {type(review).__name__}", review)
    if review.get("kind") != ADMISSION_KIND:
        raise MalformedReviewError(f"Expected {ADMISSION_KIND} but got: {review.get('kind')}", review)
    if not isinstance(review.get("request"), dict):
        raise MalformedReviewError(f"{ADMISSION_KIND} carries no request", review)
    return review


def malformed_review_response(error: MalformedReviewError) -> dict[str, Any]:
    """Wrap a diagnostic message for a malformed review in a response envelope.

    The request uid is echoed when the body carries one.
    """
    document = error.document if isinstance(error.document, dict) else {}
    request = document.get("request")
    response = message_response(str(error))
    response["uid"] = request.get("uid", "") if isinstance(request, dict) else ""
    return {"apiVersion": ADMISSION_API_VERSION, "kind": ADMISSION_KIND, "response": response}


class MutationService:
    """Applies plugin policies to Terraform admission requests.

    Attributes:
        loader: Reads the policy directory on every request.
        schemas: Resolves the resource schema from the requested resource.

    """

    def __init__(self, loader: MutationPolicyLoader, schemas: SchemaRegistry) -> None:
        self.loader = loader
        self.schemas = schemas

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return f"MutationService(loader={self.loader!r})"

    def review(self, review: dict[str, Any]) -> dict[str, Any]:
        """Build the AdmissionReview response for a decoded review.

        Args:
            review: A review returned by ``parse_review``.

        Returns:
            The response envelope echoing the request uid.

        """
        request = review["request"]
        response = self.mutate(request)
        response["uid"] = request.get("uid", "")
        return {
            "apiVersion": review.get("apiVersion", ADMISSION_API_VERSION),
            "kind": ADMISSION_KIND,
            "response": response,
        }

    def mutate(self, request: dict[str, Any]) -> dict[str, Any]:
        """Compute the admission response for one request.

        Args:
            request: The ``request`` block of an AdmissionReview.

        Returns:
            The ``response`` block without its uid.

        """
        resource = GroupVersionResource.from_request(request.get("resource") or {})
        schema = self.schemas.for_resource(resource)
        if schema is None:
            expected = ", ".join(str(r) for r in self.schemas.resources)
            console.warning(f"Expect resource to be one of {expected} but got {resource}")
            return empty_patch_response()

        obj = request.get("object")
        try:
            before = json.dumps(obj).encode()
            terraform = schema.decode(json.loads(before))
        except (ResourceDecodeError, TypeError, ValueError) as e:
            console.error(f"Failed to decode {schema.api_version} object: {e}")
            return message_response(str(e))

        try:
            policies = self.loader.load()
        except PolicyError as e:
            console.error(str(e))
            return empty_patch_response()

        try:
            applied = apply_policies(terraform, policies)
        except (TypeError, AttributeError) as e:
            console.error(f"Failed to apply plugin policies to {terraform.name}: {e}")
            return empty_patch_response()
        ic(terraform.name, applied)

        try:
            after = json.dumps(terraform.document).encode()
            operations = compute_patch(before, after)
        except (PatchComputationError, TypeError, ValueError) as e:
            console.error(f"Failed to compute patch for {terraform.name}: {e}")
            return message_response(str(e))

        if not operations:
            console.step(f"No patches to do for {terraform.name}")
            return empty_patch_response()

        for op in operations:
            console.step(f"{op['op']} {op['path']}")
        return patch_response(operations)

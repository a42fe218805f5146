"""Flask application serving the admission webhook.

Routes:
    POST /mutate: AdmissionReview mutation.
    GET|POST /api-token-please: credential relay to the Terraform Operator API.
"""

from flask import Flask, Response, jsonify, request

from tfo_plugin_manager import console
from tfo_plugin_manager.config import Settings
from tfo_plugin_manager.exceptions import RelayError
from tfo_plugin_manager.relay import CredentialRelay
from tfo_plugin_manager.server.admission import (
    InvalidReviewError,
    MalformedReviewError,
    MutationService,
    malformed_review_response,
    parse_review,
)

JSON_CONTENT_TYPE = "application/json"


def create_app(service: MutationService, relay: CredentialRelay) -> Flask:
    """Build the webhook application.

    Args:
        service: Handles ``/mutate`` reviews.
        relay: Handles ``/api-token-please``.

    Returns:
        The Flask application.

    """
    app = Flask(__name__)

    @app.post("/mutate")
    def mutate() -> Response | tuple[Response, int] | tuple[str, int]:
        if request.mimetype != JSON_CONTENT_TYPE:
            console.warning(f"contentType={request.content_type}, expect {JSON_CONTENT_TYPE}")
            return "", 415

        try:
            review = parse_review(request.get_data())
        except MalformedReviewError as e:
            console.error(str(e))
            return jsonify(malformed_review_response(e))
        except InvalidReviewError as e:
            console.error(str(e))
            return Response(str(e), status=400, mimetype="text/plain")

        return jsonify(service.review(review))

    @app.route("/api-token-please", methods=["GET", "POST"])
    def api_token() -> Response | tuple[Response, int]:
        try:
            return jsonify(relay.token_payload())
        except RelayError as e:
            console.error(str(e))
            return jsonify({"error": str(e)}), 502

    return app


def run(app: Flask, settings: Settings) -> None:
    """Serve the application over TLS with the mounted certificate. Blocks.

    Args:
        app: The application from ``create_app``.
        settings: Provides the listener address and certificate paths.

    """
    console.success(f"Server started on {console.highlight(f'{settings.host}:{settings.port}')}")
    app.run(
        host=settings.host,
        port=settings.port,
        ssl_context=(str(settings.tls_cert_file), str(settings.tls_key_file)),
        threaded=True,
        use_reloader=False,
    )

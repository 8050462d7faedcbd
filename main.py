"""Entry point: wires the session and starts the gRPC server."""

from __future__ import annotations

import logging
import random
import signal
import sys
from concurrent import futures

import grpc

import config
from pairing.docstore import DocumentStoreClient, DocumentStoreStub
from pairing.service import PairingServicer, add_PairingServicer_to_server
from pairing.session import Session

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_server(session: Session) -> grpc.Server:
    """Construct and configure the gRPC server with all dependencies wired.

    Args:
        session: The :class:`~pairing.session.Session` to serve.

    Returns:
        A configured but not-yet-started :class:`grpc.Server`.
    """
    servicer = PairingServicer(session=session)

    server = grpc.server(
        futures.ThreadPoolExecutor(max_workers=config.GRPC_MAX_WORKERS)
    )
    add_PairingServicer_to_server(servicer, server)
    server.add_insecure_port(
        f"{config.GRPC_SERVER_HOST}:{config.GRPC_SERVER_PORT}"
    )
    return server


def main() -> None:
    """Initialise the session and start the gRPC server.

    Startup sequence:
    1. Connect to the document store as a gRPC client.
    2. Start catalogue hydration and wait for it (bounded by
       ``HYDRATION_TIMEOUT_SECONDS``; pairs fail until it lands).
    3. Sign in ``DEFAULT_USER_ID`` if configured.
    4. Register ``SIGTERM``/``SIGINT`` shutdown handlers.
    5. Build and start the gRPC server.
    """
    logger.info("Connecting to document store at %s", config.DOCSTORE_ADDRESS)
    channel = grpc.insecure_channel(config.DOCSTORE_ADDRESS)
    client = DocumentStoreClient(
        DocumentStoreStub(channel), timeout=config.RPC_TIMEOUT_SECONDS
    )

    rng = random.Random(config.RANDOM_SEED)
    session = Session(client, rng=rng, max_workers=config.BACKEND_WORKERS)

    # Step 2: Hydrate catalogue
    logger.info("Loading image catalogue…")
    session.start()
    if not session.wait_until_ready(config.HYDRATION_TIMEOUT_SECONDS):
        logger.warning(
            "Catalogue not loaded after %.0fs; serving anyway.",
            config.HYDRATION_TIMEOUT_SECONDS,
        )

    # Step 3: Optional default user
    if config.DEFAULT_USER_ID:
        session.sign_in(config.DEFAULT_USER_ID)

    server = build_server(session)

    def handle_shutdown(signum: int, frame: object) -> None:
        sig_name = signal.Signals(signum).name
        logger.info("Received %s; closing session and shutting down.", sig_name)
        server.stop(grace=5)
        session.close()
        channel.close()
        sys.exit(0)

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    server.start()
    logger.info(
        "Pairing gRPC server listening on %s:%d",
        config.GRPC_SERVER_HOST,
        config.GRPC_SERVER_PORT,
    )
    server.wait_for_termination()


if __name__ == "__main__":
    main()

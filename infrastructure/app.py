#!/usr/bin/env python3
import os
from typing import Optional

from stackgraph import App, MaterializedState
from stackgraph.config import SYNTH_OUTPUT_DIR, SYNTH_STATE_FILE
from infrastructure.config import DeploymentConfig, load_config
from infrastructure.database_stack import DatabaseStack
from infrastructure.service_stack import ServiceStack

DATABASE_STACK_NAME = "DatabaseStack"
SERVICE_STACK_NAME = "PrismaServiceStack"


def create_app(
    config: DeploymentConfig,
    materialized: Optional[MaterializedState] = None,
    max_workers: Optional[int] = None
) -> App:
    """
    Build both stacks, synthesizing the database stack before the service
    stack consumes its endpoint

    Args:
        config: Deployment settings
        materialized: Attribute values reported by a previous apply
        max_workers: Upper bound on stacks synthesized in parallel

    Returns:
        App whose remaining stacks are ready for `synth`
    """
    kwargs = {} if max_workers is None else {"max_workers": max_workers}
    app = App(materialized=materialized, **kwargs)

    database_stack = DatabaseStack(app, DATABASE_STACK_NAME, config=config)
    app.synthesize(database_stack)

    ServiceStack(
        app,
        SERVICE_STACK_NAME,
        config=config,
        database_endpoint=app.bridge.export(DATABASE_STACK_NAME, "DatabaseEndpoint"),
        database_port=app.bridge.export(DATABASE_STACK_NAME, "DatabasePort"),
    )

    return app


if __name__ == "__main__":
    state = MaterializedState.from_file(SYNTH_STATE_FILE) if SYNTH_STATE_FILE else None
    app = create_app(load_config(os.environ.get("ENV_FILE")), materialized=state)
    app.synth()
    app.write(SYNTH_OUTPUT_DIR)

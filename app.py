#!/usr/bin/env python3
"""CDK application entrypoint.

Defines and synthesizes the stacks of the delivery platform:
1. RepositoryStack: ECR repository shared by every stage.
2. DeployStageStack (one per stage): network, trust groups, load balancer,
   certificates, CloudFront distribution and auto-scaled Fargate service.
3. PipelineStack: Source -> Build -> one deploy stage per stage, in order.
"""

import aws_cdk as cdk
from stacks.common.logging_config import configure_logging, get_logger
from stacks.deploy.deploy_stage_stack import DeployStageStack
from stacks.pipeline.pipeline_stack import PipelineStack
from stacks.registry.repository_stack import RepositoryStack
from stacks.topology.errors import ConfigurationError
from stacks.topology.stage_spec import StageSpec

configure_logging()
log = get_logger(__name__)

app = cdk.App()


project_name = app.node.try_get_context("project_name")
if not project_name:
    raise ConfigurationError("No 'project_name' found in context")

deployment = app.node.try_get_context("deployment")
if not deployment:
    raise ConfigurationError("No 'deployment' found in context (expects account_id and region)")

stage_contexts = app.node.try_get_context("stages")
if not stage_contexts:
    raise ConfigurationError("No 'stages' found in context")

# Every stage is validated before any stack is created
stages = [StageSpec.from_context(stage_context) for stage_context in stage_contexts]

env = cdk.Environment(
    account=deployment["account_id"],
    region=deployment["region"]
)

log.info("synthesizing_app", project=project_name, account=env.account, region=env.region,
         stages=[spec.stage for spec in stages])

# Create the shared image repository
repository_stack = RepositoryStack(app, f"{project_name}-repository",
    repository_name=project_name,
    env=env
)

# Create one independent stack per deploy stage
deploy_stacks = []
for spec in stages:
    deploy_stack = DeployStageStack(app, f"{project_name}-{spec.stage}",
        spec=spec,
        repository=repository_stack.repository,
        project_name=project_name,
        env=env
    )
    deploy_stack.add_dependency(repository_stack)
    deploy_stacks.append(deploy_stack)
    log.info("stage_topology_assembled", **deploy_stack.topology.summary())

# Create the pipeline driving every stage
pipeline_stack = PipelineStack(app, f"{project_name}-pipeline",
    pipeline_name=project_name,
    repository=repository_stack.repository,
    deploy_stages=deploy_stacks,
    env=env
)

# Add dependency
for deploy_stack in deploy_stacks:
    pipeline_stack.add_dependency(deploy_stack)

app.synth()

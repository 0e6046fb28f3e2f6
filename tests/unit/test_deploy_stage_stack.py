"""Unit tests for DeployStageStack.

Tests the stage build order, the published outputs, repeatable synthesis,
stage isolation of physical names, fail-fast validation and the deploy
stage handed to the pipeline.
"""
import pytest
import aws_cdk as cdk
from aws_cdk import aws_codepipeline as codepipeline
from aws_cdk.assertions import Template

from stacks.deploy.deploy_stage_stack import DeployStageStack
from stacks.registry.repository_stack import RepositoryStack
from stacks.topology.errors import ConfigurationError
from stacks.topology.stage_spec import StageSpec

ENV = cdk.Environment(account="111111111111", region="eu-west-1")

BETA = StageSpec(
    stage="Beta",
    domain="beta.example.com",
    zone_id="Z0123456789ABC",
    min_instances=1,
    max_instances=1,
    desired_instances=1,
)
PROD = StageSpec(
    stage="Prod",
    domain="www.example.com",
    zone_id="Z0123456789ABC",
    min_instances=1,
    max_instances=2,
    desired_instances=1,
)

EXPECTED_ORDER = (
    "network",
    "edge_group",
    "compute_group",
    "target_group",
    "zone",
    "lb_certificate",
    "distribution_certificate",
    "load_balancer",
    "distribution",
    "alias_records",
    "compute",
)


def synth_stage_stacks(*specs):
    """Synthesize one DeployStageStack per spec in a single app."""
    app = cdk.App()
    repository_stack = RepositoryStack(app, "RepositoryStackTest", repository_name="test-service", env=ENV)
    stacks = []
    for spec in specs:
        stack = DeployStageStack(app, f"DeployStageStack{spec.stage}",
            spec=spec,
            repository=repository_stack.repository,
            project_name="test-service",
            env=ENV
        )
        stack.add_dependency(repository_stack)
        stacks.append(stack)
    return app, stacks


def test_build_order():
    """Test resources are built network first and compute last."""
    _, (stack,) = synth_stage_stacks(BETA)
    assert stack.topology.build_order == EXPECTED_ORDER
    assert stack.topology.summary()["build_order"] == list(EXPECTED_ORDER)


def test_stage_outputs():
    """Test the stage identifiers, and nothing else, are published as stack outputs."""
    _, (stack,) = synth_stage_stacks(BETA)
    outputs = Template.from_stack(stack).find_outputs("*")
    assert set(outputs) == {
        "VpcId",
        "ZoneId",
        "LoadBalancerCertificateArn",
        "DistributionCertificateArn",
        "TargetGroupArn",
        "EdgeSecurityGroupId",
        "ComputeSecurityGroupId",
        "LoadBalancerArn",
        "DistributionDomainName",
        "ClusterArn",
        "ServiceArn",
        "TaskDefinitionArn",
        "ContainerName",
        "StageName",
    }
    assert outputs["StageName"]["Value"] == "Beta"
    assert outputs["ContainerName"]["Value"] == "test-service"


def test_synthesis_is_repeatable():
    """Test synthesizing the same stage twice yields the same template."""
    _, (first,) = synth_stage_stacks(BETA)
    _, (second,) = synth_stage_stacks(BETA)
    assert Template.from_stack(first).to_json() == Template.from_stack(second).to_json()


def test_stage_resources_are_counted_once():
    """Test a stage holds exactly one of each topology resource."""
    _, (stack,) = synth_stage_stacks(BETA)
    template = Template.from_stack(stack)
    template.resource_count_is("AWS::EC2::VPC", 1)
    template.resource_count_is("AWS::ECS::Cluster", 1)
    template.resource_count_is("AWS::ECS::Service", 1)
    template.resource_count_is("AWS::ElasticLoadBalancingV2::LoadBalancer", 1)
    template.resource_count_is("AWS::CloudFront::Distribution", 1)


def test_missing_image_surfaces_through_alarm_only():
    """Test a stage that cannot start tasks is reported by the service alarm.

    The only custom resource is the us-east-1 certificate request: nothing
    looks up the image at deploy time, since the pipeline pushes images
    without updating the stage stack.
    """
    _, (stack,) = synth_stage_stacks(BETA)
    template = Template.from_stack(stack)
    compute = stack.topology.compute

    custom_resources = template.find_resources("AWS::CloudFormation::CustomResource")
    assert len(custom_resources) == 1
    assert next(iter(custom_resources.values()))["Properties"]["Region"] == "us-east-1"

    alarm = next(iter(template.find_resources("AWS::CloudWatch::Alarm").values()))["Properties"]
    dimensions = {d["Name"]: d["Value"] for d in alarm["Dimensions"]}
    assert alarm["MetricName"] == "RunningTaskCount"
    assert dimensions == {
        "ClusterName": {"Ref": stack.get_logical_id(compute.cluster.node.default_child)},
        "ServiceName": {"Fn::GetAtt": [stack.get_logical_id(compute.service.node.default_child), "Name"]},
    }


def test_stages_do_not_share_physical_names():
    """Test two stages in one app get distinct cluster, family and log names."""
    _, (beta, prod) = synth_stage_stacks(BETA, PROD)

    def names(stack):
        template = Template.from_stack(stack)
        cluster = next(iter(template.find_resources("AWS::ECS::Cluster").values()))
        task = next(iter(template.find_resources("AWS::ECS::TaskDefinition").values()))
        container = task["Properties"]["ContainerDefinitions"][0]
        return {
            cluster["Properties"]["ClusterName"],
            task["Properties"]["Family"],
            container["LogConfiguration"]["Options"]["awslogs-stream-prefix"],
        }

    assert names(beta) == {"test-service-Beta"}
    assert names(prod) == {"test-service-Prod"}
    assert beta.topology.compute.container_name == prod.topology.compute.container_name


def test_stage_tags():
    """Test stage resources are tagged with project, stage and manager."""
    _, (stack,) = synth_stage_stacks(BETA)
    vpc = next(iter(Template.from_stack(stack).find_resources("AWS::EC2::VPC").values()))
    tags = {t["Key"]: t["Value"] for t in vpc["Properties"]["Tags"]}
    assert tags["Project"] == "test-service"
    assert tags["Stage"] == "Beta"
    assert tags["ManagedBy"] == "CDK"


def test_invalid_spec_rejected_before_stack_is_created():
    """Test an invalid spec raises ConfigurationError before the stack exists."""
    spec = StageSpec(
        stage="Broken",
        domain="broken.example.com",
        zone_id="Z0123456789ABC",
        min_instances=1,
        max_instances=1,
        desired_instances=1,
    )
    # Bypass the frozen dataclass to get a spec that skipped validation
    object.__setattr__(spec, "max_instances", 0)

    app = cdk.App()
    repository_stack = RepositoryStack(app, "RepositoryStackTest", repository_name="test-service", env=ENV)
    with pytest.raises(ConfigurationError, match="max_instances"):
        DeployStageStack(app, "DeployStageStackBroken",
            spec=spec,
            repository=repository_stack.repository,
            project_name="test-service",
            env=ENV
        )
    assert app.node.try_find_child("DeployStageStackBroken") is None


def test_deploy_stage_targets_stage_service():
    """Test the pipeline stage is named after the stage and deploys to its service."""
    _, (stack,) = synth_stage_stacks(BETA)
    stage = stack.deploy_stage(codepipeline.Artifact("Image"))

    assert stage.stage_name == "Beta"
    assert len(stage.actions) == 1
    action = stage.actions[0].action_properties
    assert action.action_name == "ECSDeploy_Action"
    assert action.provider == "ECS"
    assert action.category == codepipeline.ActionCategory.DEPLOY
    assert stack.service is stack.topology.compute.service

"""Unit tests for the edge and compute trust groups.

The load balancer ends up with three groups in play:
- the edge trust group, one public rule on 443;
- the default group the load balancer creates for itself, which receives
  the listeners' open rules (443 and 80) because it is the only group
  attached when the listeners are declared;
- the compute trust group, reachable from the edge group on all TCP ports
  and from the default group on the target port (target registration).
The compute group never admits an address range.
"""
import aws_cdk as cdk
from aws_cdk.assertions import Template

from stacks.deploy.deploy_stage_stack import DeployStageStack
from stacks.registry.repository_stack import RepositoryStack
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


def synth_stage_stack():
    """Synthesize a beta DeployStageStack for testing security groups."""
    app = cdk.App()
    repository_stack = RepositoryStack(app, "RepositoryStackTest", repository_name="test-service", env=ENV)
    stack = DeployStageStack(app, "DeployStageStackTest",
        spec=BETA,
        repository=repository_stack.repository,
        project_name="test-service",
        env=ENV
    )
    template = Template.from_stack(stack)
    return stack, template


def _group_id(stack, group):
    """GroupId reference CloudFormation uses for ``group``."""
    return {"Fn::GetAtt": [stack.get_logical_id(group.node.default_child), "GroupId"]}


def _ingress_resources_for(template, group_ref):
    return [
        res["Properties"]
        for res in template.find_resources("AWS::EC2::SecurityGroupIngress").values()
        if res["Properties"].get("GroupId") == group_ref
    ]


def test_edge_group_admits_https_only():
    """Test the edge group has a single public ingress rule on 443."""
    stack, template = synth_stage_stack()
    edge_group = stack.topology.edge_group
    logical_id = stack.get_logical_id(edge_group.node.default_child)

    props = template.find_resources("AWS::EC2::SecurityGroup")[logical_id]["Properties"]
    assert props["SecurityGroupIngress"] == [{
        "CidrIp": "0.0.0.0/0",
        "Description": "Allow HTTPS traffic",
        "FromPort": 443,
        "IpProtocol": "tcp",
        "ToPort": 443,
    }]
    assert _ingress_resources_for(template, _group_id(stack, edge_group)) == []


def test_compute_group_has_no_cidr_ingress():
    """Test the compute group never admits an address range."""
    stack, template = synth_stage_stack()
    compute_group = stack.topology.compute_group
    logical_id = stack.get_logical_id(compute_group.node.default_child)

    props = template.find_resources("AWS::EC2::SecurityGroup")[logical_id]["Properties"]
    assert not props.get("SecurityGroupIngress")

    rules = _ingress_resources_for(template, _group_id(stack, compute_group))
    assert rules, "Compute group must be reachable from the load balancer"
    for rule in rules:
        assert "CidrIp" not in rule
        assert "CidrIpv6" not in rule
        assert "SourceSecurityGroupId" in rule


def test_compute_group_admits_edge_group():
    """Test the compute group admits all TCP from the edge group."""
    stack, template = synth_stage_stack()
    rules = _ingress_resources_for(template, _group_id(stack, stack.topology.compute_group))
    edge_ref = _group_id(stack, stack.topology.edge_group)

    assert {
        "IpProtocol": "tcp",
        "Description": "Application load balancer",
        "FromPort": 0,
        "GroupId": _group_id(stack, stack.topology.compute_group),
        "SourceSecurityGroupId": edge_ref,
        "ToPort": 65535,
    } in rules


def test_service_uses_compute_group():
    """Test the Fargate service runs behind the compute group."""
    stack, template = synth_stage_stack()
    service = next(iter(template.find_resources("AWS::ECS::Service").values()))
    groups = service["Properties"]["NetworkConfiguration"]["AwsvpcConfiguration"]["SecurityGroups"]
    assert groups == [_group_id(stack, stack.topology.compute_group)]


def _default_alb_group(stack):
    """Security group the load balancer creates for itself."""
    return stack.topology.load_balancer.load_balancer.node.find_child("SecurityGroup")


def test_compute_group_sources_are_exact():
    """Test the compute group admits the edge group and the ALB default group only."""
    stack, template = synth_stage_stack()
    rules = _ingress_resources_for(template, _group_id(stack, stack.topology.compute_group))
    sources = {
        (rule["SourceSecurityGroupId"]["Fn::GetAtt"][0], rule["FromPort"], rule["ToPort"])
        for rule in rules
    }
    edge_id = stack.get_logical_id(stack.topology.edge_group.node.default_child)
    default_id = stack.get_logical_id(_default_alb_group(stack).node.default_child)

    assert sources == {(edge_id, 0, 65535), (default_id, 80, 80)}


def test_listener_rules_land_on_alb_default_group():
    """Test the listeners open 443 and 80 on the ALB default group, not the edge group."""
    stack, template = synth_stage_stack()
    default_id = stack.get_logical_id(_default_alb_group(stack).node.default_child)

    props = template.find_resources("AWS::EC2::SecurityGroup")[default_id]["Properties"]
    public_ports = sorted(
        rule["FromPort"] for rule in props["SecurityGroupIngress"] if rule.get("CidrIp") == "0.0.0.0/0"
    )
    assert public_ports == [80, 443]

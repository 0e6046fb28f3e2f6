"""Stage topology assembler.

Wires the network, trust groups, target group, certificates, load balancer,
distribution, DNS alias and compute unit of one stage into a ResourceGraph
and builds it. The order is a property of the declared dependencies, not of
statement order, and can be inspected before anything is created.
"""
from __future__ import annotations

import dataclasses
from typing import Any, Mapping

from constructs import Construct
from aws_cdk import (
    Duration,
    aws_certificatemanager as acm,
    aws_cloudfront as cloudfront,
    aws_ec2 as ec2,
    aws_ecr as ecr,
    aws_ecs as ecs,
    aws_elasticloadbalancingv2 as elbv2,
    aws_route53 as route53,
)

from stacks.compute.compute_scaling_unit import ComputeScalingUnit
from stacks.edge.certificates import issue_certificate, lookup_zone
from stacks.edge.distribution import create_alias_records, create_distribution
from stacks.network.network import NetworkTopology
from stacks.routing.load_balancer import EdgeLoadBalancer
from stacks.routing.target_group import create_target_group
from stacks.security.trust_groups import create_compute_group, create_edge_group
from stacks.topology.graph import ResourceGraph
from stacks.topology.stage_spec import StageSpec


@dataclasses.dataclass(frozen=True)
class StageTopology:
    """Everything built for one stage, returned once by the assembler."""

    stage: str
    build_order: tuple[str, ...]
    network: NetworkTopology
    edge_group: ec2.SecurityGroup
    compute_group: ec2.SecurityGroup
    target_group: elbv2.ApplicationTargetGroup
    zone: route53.IHostedZone
    lb_certificate: acm.ICertificate
    distribution_certificate: acm.ICertificate
    load_balancer: EdgeLoadBalancer
    distribution: cloudfront.Distribution
    alias_records: tuple
    compute: ComputeScalingUnit

    @property
    def service(self) -> ecs.FargateService:
        """The handle the pipeline deploys to."""
        return self.compute.service

    def identifiers(self) -> dict[str, str]:
        """Identifiers worth surfacing for operators, keyed by output name."""
        return {
            "VpcId": self.network.vpc.vpc_id,
            "ZoneId": self.zone.hosted_zone_id,
            "LoadBalancerCertificateArn": self.lb_certificate.certificate_arn,
            "DistributionCertificateArn": self.distribution_certificate.certificate_arn,
            "TargetGroupArn": self.target_group.target_group_arn,
            "EdgeSecurityGroupId": self.edge_group.security_group_id,
            "ComputeSecurityGroupId": self.compute_group.security_group_id,
            "LoadBalancerArn": self.load_balancer.load_balancer_arn,
            "DistributionDomainName": self.distribution.distribution_domain_name,
            "ClusterArn": self.compute.cluster.cluster_arn,
            "ServiceArn": self.compute.service.service_arn,
            "TaskDefinitionArn": self.compute.task_definition.task_definition_arn,
            "ContainerName": self.compute.container.container_name,
            "StageName": self.stage,
        }

    def summary(self) -> dict[str, Any]:
        """Synthesis-time description made of plain strings, suitable for logging."""
        return {
            "stage": self.stage,
            "build_order": list(self.build_order),
            "network": self.network.vpc.node.path,
            "load_balancer": self.load_balancer.load_balancer.node.path,
            "distribution": self.distribution.node.path,
            "service": self.compute.service.node.path,
        }


def build_topology_graph(scope: Construct, spec: StageSpec, repository: ecr.IRepository,
                         project_name: str) -> ResourceGraph:
    """Declare the stage resources and their dependencies without building them."""
    q = spec.qualify
    graph = ResourceGraph()

    graph.add("network", lambda _: NetworkTopology(scope, q("network"),
        spec=spec,
        project_name=project_name,
    ))
    graph.add("edge_group",
        lambda deps: create_edge_group(scope, q("alb-sg"), deps["network"].vpc),
        depends_on=["network"])
    graph.add("compute_group",
        lambda deps: create_compute_group(scope, q("ecs-sg"), deps["network"].vpc, deps["edge_group"]),
        depends_on=["network", "edge_group"])
    graph.add("target_group",
        lambda deps: create_target_group(scope, q("target-group"), deps["network"].vpc,
            port=spec.container_port,
            health_check_path=spec.health_check_path,
            interval=Duration.seconds(spec.health_check_interval_seconds),
        ),
        depends_on=["network"])
    graph.add("zone", lambda _: lookup_zone(scope, q("zone"),
        zone_name=spec.domain,
        zone_id=spec.zone_id,
    ))
    graph.add("lb_certificate",
        lambda deps: issue_certificate(scope, q("alb-cert"),
            domain=spec.domain,
            zone=deps["zone"],
        ),
        depends_on=["zone"])
    graph.add("distribution_certificate",
        lambda deps: issue_certificate(scope, q("cross-region-cert"),
            domain=spec.domain,
            zone=deps["zone"],
            validation_region=spec.distribution_certificate_region,
        ),
        depends_on=["zone"])
    graph.add("load_balancer",
        lambda deps: EdgeLoadBalancer(scope, q("alb"),
            vpc=deps["network"].vpc,
            target_group=deps["target_group"],
            trust_group=deps["edge_group"],
            certificate=deps["lb_certificate"],
        ),
        depends_on=["network", "target_group", "edge_group", "lb_certificate"])
    graph.add("distribution",
        lambda deps: create_distribution(scope, q("cf-distribution"),
            load_balancer=deps["load_balancer"].load_balancer,
            domain=spec.domain,
            certificate=deps["distribution_certificate"],
        ),
        depends_on=["load_balancer", "distribution_certificate"])
    graph.add("alias_records",
        lambda deps: create_alias_records(scope, q("alias"),
            zone=deps["zone"],
            domain=spec.domain,
            distribution=deps["distribution"],
        ),
        depends_on=["zone", "distribution"])
    graph.add("compute",
        lambda deps: ComputeScalingUnit(scope, q("ecs"),
            stage=spec.stage,
            project_name=project_name,
            vpc=deps["network"].vpc,
            trust_group=deps["compute_group"],
            target_group=deps["target_group"],
            repository=repository,
            container_port=spec.container_port,
            desired_count=spec.desired_instances,
            min_capacity=spec.min_instances,
            max_capacity=spec.max_instances,
            private_compute=spec.private_compute,
        ),
        depends_on=["network", "compute_group", "target_group"])
    return graph


def assemble_topology(scope: Construct, spec: StageSpec, repository: ecr.IRepository,
                      project_name: str) -> StageTopology:
    """Validate ``spec``, then build every resource of the stage in dependency order.

    Args:
        scope: Construct (usually the stage stack) owning every resource.
        spec: Stage parameters.
        repository: Shared image repository, only read by the stage.
        project_name: Prefix for the stage's physical names.

    Returns:
        The StageTopology holding every handle, including the compute service.

    Raises:
        ConfigurationError: ``spec`` is invalid; nothing has been created.
        AvailabilityError: fewer than two availability zones.
        AttachmentError: the resource graph is inconsistent; nothing has been created.
    """
    spec.validate()
    graph = build_topology_graph(scope, spec, repository, project_name)
    order = graph.topological_order()
    built: Mapping[str, Any] = graph.build()
    return StageTopology(stage=spec.stage, build_order=tuple(order), **built)

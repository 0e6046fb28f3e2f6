"""Trust groups separating the public edge from the compute tasks.

The edge group admits the internet on the TLS port only. The compute group
only admits security group sources, never an address range, and references
the edge group, so it has to be created after it.
"""
from constructs import Construct
from aws_cdk import aws_ec2 as ec2

HTTPS_PORT = 443


def create_edge_group(scope: Construct, construct_id: str, vpc: ec2.IVpc) -> ec2.SecurityGroup:
    """Security group for the internet-facing load balancer."""
    edge_group = ec2.SecurityGroup(scope, construct_id,
        vpc=vpc,
        allow_all_outbound=True,
        description="Edge load balancer: HTTPS from the internet"
    )
    edge_group.add_ingress_rule(
        ec2.Peer.any_ipv4(),
        ec2.Port.tcp(HTTPS_PORT),
        "Allow HTTPS traffic"
    )
    return edge_group


def create_compute_group(scope: Construct, construct_id: str, vpc: ec2.IVpc,
                         edge_group: ec2.ISecurityGroup) -> ec2.SecurityGroup:
    """Security group for compute tasks, reachable only through the edge group."""
    compute_group = ec2.SecurityGroup(scope, construct_id,
        vpc=vpc,
        allow_all_outbound=True,
        description="Compute tasks: traffic from the edge load balancer only"
    )
    compute_group.connections.allow_from(
        edge_group,
        ec2.Port.all_tcp(),
        "Application load balancer"
    )
    return compute_group

"""Health-checked target group shared by the load balancer and the compute service."""
from constructs import Construct
from aws_cdk import (
    Duration,
    aws_ec2 as ec2,
    aws_elasticloadbalancingv2 as elbv2,
)


def create_target_group(scope: Construct, construct_id: str, vpc: ec2.IVpc, *,
                        port: int = 80,
                        health_check_path: str = "/",
                        interval: Duration = None) -> elbv2.ApplicationTargetGroup:
    """Create an IP-addressed target group with an HTTP liveness probe.

    Tasks in awsvpc mode register by IP, so the target type cannot be instance.
    The default interval leaves room for container cold starts.

    Args:
        scope: Construct the target group is created in.
        construct_id: Stage-qualified construct id.
        vpc: Network the targets live in.
        port: Port traffic is forwarded to.
        health_check_path: Path probed by the health check.
        interval: Time between two health checks (default: 2 minutes).

    Returns:
        The target group, ready to be referenced by a listener or a service.
    """
    target_group = elbv2.ApplicationTargetGroup(scope, construct_id,
        port=port,
        vpc=vpc,
        protocol=elbv2.ApplicationProtocol.HTTP,
        target_type=elbv2.TargetType.IP,
    )
    target_group.configure_health_check(
        path=health_check_path,
        protocol=elbv2.Protocol.HTTP,
        interval=interval or Duration.minutes(2),
    )
    return target_group

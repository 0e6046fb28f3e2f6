"""Internet-facing load balancer terminating TLS for a stage."""
from constructs import Construct
from aws_cdk import (
    aws_certificatemanager as acm,
    aws_ec2 as ec2,
    aws_elasticloadbalancingv2 as elbv2,
)

HTTP_PORT = 80
HTTPS_PORT = 443


class EdgeLoadBalancer(Construct):
    """Application load balancer with an HTTPS listener and an HTTP redirect.

    The listeners are declared before the edge trust group is attached, so the
    TLS and redirect behavior exist before the trust boundary is sealed. A
    listener only sees the groups attached when it is created: its ``open``
    rules land on the default group the load balancer creates for itself and
    never widen the edge trust group.
    """

    def __init__(self, scope: Construct, construct_id: str, *,
                 vpc: ec2.IVpc,
                 target_group: elbv2.IApplicationTargetGroup,
                 trust_group: ec2.ISecurityGroup,
                 certificate: acm.ICertificate) -> None:
        super().__init__(scope, construct_id)

        self.load_balancer = elbv2.ApplicationLoadBalancer(self, "Alb",
            vpc=vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC),
            internet_facing=True
        )

        self.https_listener = self.load_balancer.add_listener("HttpsListener",
            open=True,
            port=HTTPS_PORT,
            protocol=elbv2.ApplicationProtocol.HTTPS,
            default_target_groups=[target_group],
            certificates=[elbv2.ListenerCertificate.from_certificate_manager(certificate)],
        )

        # Plain HTTP never reaches a target: permanent redirect only.
        self.redirect_listener = self.load_balancer.add_redirect(
            source_port=HTTP_PORT,
            source_protocol=elbv2.ApplicationProtocol.HTTP,
            target_port=HTTPS_PORT,
            target_protocol=elbv2.ApplicationProtocol.HTTPS,
        )

        self.load_balancer.add_security_group(trust_group)

    @property
    def load_balancer_arn(self) -> str:
        return self.load_balancer.load_balancer_arn

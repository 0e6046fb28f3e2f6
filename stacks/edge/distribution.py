"""Edge distribution fronting the stage load balancer.

The distribution is the canonical public entry point of a stage: the
domain's alias records point at it, not at the load balancer.
"""
from constructs import Construct
from aws_cdk import (
    aws_certificatemanager as acm,
    aws_cloudfront as cloudfront,
    aws_cloudfront_origins as origins,
    aws_elasticloadbalancingv2 as elbv2,
    aws_route53 as route53,
    aws_route53_targets as route53_targets,
)


def create_distribution(scope: Construct, construct_id: str, *,
                        load_balancer: elbv2.IApplicationLoadBalancer,
                        domain: str,
                        certificate: acm.ICertificate) -> cloudfront.Distribution:
    """Create a distribution with the load balancer as its only origin.

    The viewer Host header is forwarded so the origin's TLS certificate, issued
    for ``domain``, matches the name CloudFront connects with.
    """
    return cloudfront.Distribution(scope, construct_id,
        default_behavior=cloudfront.BehaviorOptions(
            origin=origins.LoadBalancerV2Origin(
                load_balancer,
                protocol_policy=cloudfront.OriginProtocolPolicy.HTTPS_ONLY,
                origin_ssl_protocols=[cloudfront.OriginSslPolicy.TLS_V1_2]
            ),
            viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
            allowed_methods=cloudfront.AllowedMethods.ALLOW_ALL,
            cache_policy=cloudfront.CachePolicy.CACHING_DISABLED,
            origin_request_policy=cloudfront.OriginRequestPolicy.ALL_VIEWER,
        ),
        domain_names=[domain],
        certificate=certificate,
    )


def create_alias_records(scope: Construct, construct_id: str, *,
                         zone: route53.IHostedZone,
                         domain: str,
                         distribution: cloudfront.IDistribution) -> tuple:
    """Point ``domain`` (IPv4 and IPv6) at the distribution."""
    target = route53.RecordTarget.from_alias(route53_targets.CloudFrontTarget(distribution))
    ipv4 = route53.ARecord(scope, f"{construct_id}-a",
        zone=zone,
        record_name=domain,
        target=target
    )
    ipv6 = route53.AaaaRecord(scope, f"{construct_id}-aaaa",
        zone=zone,
        record_name=domain,
        target=target
    )
    return ipv4, ipv6

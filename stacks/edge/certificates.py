"""DNS-validated certificates for a stage domain.

A stage issues two certificates for the same domain and zone: one in the
stack's region for the load balancer, one in us-east-1 for the edge
distribution. They are validated and issued independently and cannot be
swapped for one another.

Issuance is asynchronous: the returned handle is a request. CloudFormation
waits for the DNS validation record to be honored, not this code.
"""
from typing import Optional

from constructs import Construct
from aws_cdk import (
    aws_certificatemanager as acm,
    aws_route53 as route53,
)


def lookup_zone(scope: Construct, construct_id: str, *,
                zone_name: str,
                zone_id: str) -> route53.IHostedZone:
    """Reference the existing hosted zone that owns the stage domain."""
    return route53.HostedZone.from_hosted_zone_attributes(scope, construct_id,
        zone_name=zone_name,
        hosted_zone_id=zone_id
    )


def issue_certificate(scope: Construct, construct_id: str, *,
                      domain: str,
                      zone: route53.IHostedZone,
                      validation_region: Optional[str] = None) -> acm.ICertificate:
    """Request a certificate for ``domain`` validated through a record in ``zone``.

    Without ``validation_region`` the certificate lives in the stack's own
    region. With it, the request is made from that region (us-east-1 for
    CloudFront), which a regular ``acm.Certificate`` cannot do.

    ``DnsValidatedCertificate`` is deprecated in CDK v2 in favour of an
    ``acm.Certificate`` in a us-east-1 stack shared through cross-region
    references. It is kept so that each stage remains a single stack.
    """
    if validation_region is None:
        return acm.Certificate(scope, construct_id,
            domain_name=domain,
            validation=acm.CertificateValidation.from_dns(zone)
        )

    return acm.DnsValidatedCertificate(scope, construct_id,
        domain_name=domain,
        hosted_zone=zone,
        region=validation_region
    )

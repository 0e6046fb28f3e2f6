"""Stage network module.

Defines the isolated VPC every other stage resource lives in:
- Two availability zones, never fewer
- Public subnets for the load balancer (and, by default, the tasks)
- Private subnets, isolated unless private compute is enabled
- Stage-qualified subnet names
"""
from constructs import Construct
from aws_cdk import (
    Stack,
    aws_ec2 as ec2,
    Tags
)

from stacks.topology.errors import AvailabilityError
from stacks.topology.stage_spec import StageSpec

REQUIRED_AZS = 2


class NetworkTopology(Construct):
    """VPC spanning two availability zones, split into public and private subnets.

    Without private compute there is no NAT gateway: the private subnets are
    isolated and tasks run in the public subnets with their own public IP.
    With private compute a single NAT gateway gives the private subnets egress.
    """

    def __init__(self, scope: Construct, construct_id: str, *,
                 spec: StageSpec,
                 project_name: str) -> None:
        available_azs = Stack.of(scope).availability_zones
        if len(available_azs) < REQUIRED_AZS:
            raise AvailabilityError(
                f"Stage '{spec.stage}' needs {REQUIRED_AZS} availability zones, "
                f"region offers {len(available_azs)}: {available_azs}"
            )

        super().__init__(scope, construct_id)

        self.stage = spec.stage
        self.vpc_name = f"{project_name}-{spec.stage}-vpc"
        self.private_subnet_type = (
            ec2.SubnetType.PRIVATE_WITH_EGRESS if spec.private_compute
            else ec2.SubnetType.PRIVATE_ISOLATED
        )

        self.vpc = ec2.Vpc(self, "Vpc",
            ip_addresses=ec2.IpAddresses.cidr(spec.vpc_cidr),
            max_azs=REQUIRED_AZS,
            enable_dns_hostnames=True,
            enable_dns_support=True,
            vpc_name=self.vpc_name,
            nat_gateways=1 if spec.private_compute else 0,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name="public",
                    subnet_type=ec2.SubnetType.PUBLIC,
                    cidr_mask=24,
                    map_public_ip_on_launch=True
                ),
                ec2.SubnetConfiguration(
                    name="private",
                    subnet_type=self.private_subnet_type,
                    cidr_mask=24
                )
            ],
        )

        self.resource_tags(f"{project_name}-{spec.stage}")

    @property
    def public_subnets(self):
        return self.vpc.public_subnets

    @property
    def private_subnets(self):
        return self.vpc.private_subnets + self.vpc.isolated_subnets

    def resource_tags(self, prefix: str) -> None:
        """Tag subnets with stage-qualified names"""
        for role, subnets in (("public", self.public_subnets), ("private", self.private_subnets)):
            for subnet in subnets:
                az_index = self.vpc.availability_zones.index(subnet.availability_zone)
                az_letter = chr(ord('a') + az_index)
                Tags.of(subnet).add("Name", f"{prefix}-{role}-{az_letter}")

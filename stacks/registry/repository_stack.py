"""Shared container image repository stack.

Every stage pulls the ``latest`` image from this single repository; the
build stage is the only writer.
"""
from constructs import Construct
from aws_cdk import (
    Stack,
    Duration,
    RemovalPolicy,
    aws_ecr as ecr,
    CfnOutput,
)


class RepositoryStack(Stack):
    """CDK Stack owning the ECR repository shared by all stages."""

    def __init__(self, scope: Construct, construct_id: str, *,
                 repository_name: str,
                 **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.repository = ecr.Repository(self, "Repository",
            repository_name=repository_name,
            removal_policy=RemovalPolicy.DESTROY,
            image_tag_mutability=ecr.TagMutability.MUTABLE,
            image_scan_on_push=False,
            lifecycle_rules=[
                ecr.LifecycleRule(
                    rule_priority=1,
                    description="Expire images older than 1000 days",
                    max_image_age=Duration.days(1000)
                )
            ]
        )

        CfnOutput(self, "RepositoryArn", value=self.repository.repository_arn)
        CfnOutput(self, "RepositoryUri", value=self.repository.repository_uri)

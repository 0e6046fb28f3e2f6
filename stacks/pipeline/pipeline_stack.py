"""Delivery pipeline stack module.

Source (GitHub through a CodeStar connection) -> Build (container image
pushed to the shared repository) -> one deploy stage per DeployStageStack,
in the order the stages are given.
"""
from typing import Sequence

from constructs import Construct
from aws_cdk import (
    Stack,
    aws_codebuild as codebuild,
    aws_codepipeline as codepipeline,
    aws_codepipeline_actions as codepipeline_actions,
    aws_ecr as ecr,
    aws_iam as iam,
    aws_ssm as ssm,
    CfnOutput,
)

from stacks.deploy.deploy_stage_stack import DeployStageStack

SOURCE_BRANCH = "main"
GITHUB_USER_PARAMETER = "GITHUB_USER"
GITHUB_REPO_PARAMETER = "GITHUB_REPO"
GITHUB_CONNECTION_PARAMETER = "GITHUB_CONN"


class PipelineStack(Stack):
    """CDK Stack for the CodePipeline driving every deploy stage."""

    def __init__(self, scope: Construct, construct_id: str, *,
                 pipeline_name: str,
                 repository: ecr.IRepository,
                 deploy_stages: Sequence[DeployStageStack],
                 **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.source_code = codepipeline.Artifact("SourceCode")
        self.image = codepipeline.Artifact("Image")

        self.pipeline = codepipeline.Pipeline(self, "Pipeline",
            pipeline_name=pipeline_name,
            cross_account_keys=False,
        )

        self.add_stage(self.source_stage())
        self.project = self.create_build_project(repository)
        self.add_stage(self.build_stage())

        for deploy_stage in deploy_stages:
            self.add_stage(deploy_stage.deploy_stage(self.image))

        CfnOutput(self, "PipelineArn", value=self.pipeline.pipeline_arn)
        CfnOutput(self, "BuildProjectName", value=self.project.project_name)

    def add_stage(self, stage: codepipeline.StageProps) -> None:
        """Append a stage to the pipeline."""
        self.pipeline.add_stage(stage_name=stage.stage_name, actions=stage.actions)

    def source_stage(self) -> codepipeline.StageProps:
        """Stage pulling the ``main`` branch; coordinates are read from SSM."""
        owner = ssm.StringParameter.value_for_string_parameter(self, GITHUB_USER_PARAMETER)
        repo = ssm.StringParameter.value_for_string_parameter(self, GITHUB_REPO_PARAMETER)
        connection_arn = ssm.StringParameter.value_for_string_parameter(self, GITHUB_CONNECTION_PARAMETER)

        github_action = codepipeline_actions.CodeStarConnectionsSourceAction(
            action_name="Github_Source",
            branch=SOURCE_BRANCH,
            connection_arn=connection_arn,
            output=self.source_code,
            owner=owner,
            repo=repo,
            code_build_clone_output=True,
        )
        return codepipeline.StageProps(stage_name="Source", actions=[github_action])

    def create_build_project(self, repository: ecr.IRepository) -> codebuild.PipelineProject:
        """Docker-capable build project allowed to push to the shared repository."""
        project = codebuild.PipelineProject(self, "Project",
            build_spec=codebuild.BuildSpec.from_source_filename("buildspec.yml"),
            environment=codebuild.BuildEnvironment(
                build_image=codebuild.LinuxBuildImage.STANDARD_7_0,
                privileged=True,
            ),
            environment_variables={
                "REPOSITORY_URI": codebuild.BuildEnvironmentVariable(value=repository.repository_uri),
            },
        )
        project.role.add_managed_policy(
            iam.ManagedPolicy.from_aws_managed_policy_name("AmazonEC2ContainerRegistryPowerUser")
        )
        # Base images come from the ECR public gallery
        ecr.PublicGalleryAuthorizationToken.grant_read(project.grant_principal)
        return project

    def build_stage(self) -> codepipeline.StageProps:
        codebuild_action = codepipeline_actions.CodeBuildAction(
            action_name="CodeBuild_Action",
            input=self.source_code,
            outputs=[self.image],
            project=self.project,
        )
        return codepipeline.StageProps(stage_name="Build", actions=[codebuild_action])

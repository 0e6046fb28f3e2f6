"""Deploy stage stack module.

One stack per deployment stage (beta, prod...). Assembles the stage topology,
publishes its identifiers as outputs and provides the pipeline with the stage's deploy action.
"""
from constructs import Construct
from aws_cdk import (
    Stack,
    aws_codepipeline as codepipeline,
    aws_codepipeline_actions as codepipeline_actions,
    aws_ecr as ecr,
    CfnOutput,
    Tags
)

from stacks.topology.assembler import assemble_topology
from stacks.topology.stage_spec import StageSpec


class DeployStageStack(Stack):
    """CDK Stack holding the complete runtime topology of one stage.

    Stage stacks share nothing but the read-only image repository, so they can
    be deployed in any order.
    """

    def __init__(self, scope: Construct, construct_id: str, *,
                 spec: StageSpec,
                 repository: ecr.IRepository,
                 project_name: str,
                 **kwargs) -> None:
        spec.validate()
        super().__init__(scope, construct_id, **kwargs)

        self.spec = spec
        self.project_name = project_name

        self.topology = assemble_topology(self, spec, repository, project_name)

        self.resource_tags()
        self.output()

    @property
    def service(self):
        return self.topology.service

    def deploy_stage(self, image: codepipeline.Artifact) -> codepipeline.StageProps:
        """Pipeline stage deploying ``image`` to this stage's service.

        Args:
            image: Artifact holding the image definitions file written by the build.

        Returns:
            Stage configuration to append to the pipeline.
        """
        deploy_action = codepipeline_actions.EcsDeployAction(
            action_name="ECSDeploy_Action",
            input=image,
            service=self.service,
        )
        return codepipeline.StageProps(
            stage_name=self.spec.stage,
            actions=[deploy_action],
        )

    def output(self) -> None:
        """Publish the stage identifiers once, from the assembled topology."""
        for name, value in self.topology.identifiers().items():
            CfnOutput(self, name, value=value)

    def resource_tags(self) -> None:
        """Apply resource tags"""
        Tags.of(self).add("Project", self.project_name)
        Tags.of(self).add("Stage", self.spec.stage)
        Tags.of(self).add("ManagedBy", "CDK")

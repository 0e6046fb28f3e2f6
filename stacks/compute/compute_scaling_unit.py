"""Compute scaling unit module.

Runs the stage's container on ECS Fargate:
- Cluster and awsvpc task definition (256 CPU units / 512 MiB)
- One container pulling the ``latest`` tag of the shared repository
- Service registered into the stage target group behind the compute trust group
- CPU and memory target tracking between the stage capacity bounds
- Alarm raised when the service cannot keep a task running
"""
from constructs import Construct
from aws_cdk import (
    Duration,
    Tags,
    aws_cloudwatch as cloudwatch,
    aws_ec2 as ec2,
    aws_ecr as ecr,
    aws_ecs as ecs,
    aws_elasticloadbalancingv2 as elbv2,
)

IMAGE_TAG = "latest"
TASK_CPU = "256"
TASK_MEMORY_MIB = "512"
CONTAINER_MEMORY_MIB = 512
TARGET_UTILIZATION_PERCENT = 70
SCALING_COOLDOWN = Duration.seconds(60)


class ComputeScalingUnit(Construct):
    """Cluster, task definition, container and auto-scaled Fargate service of a stage.

    The unit only declares the scaling policy. The scaling controller evaluates
    the CPU and memory policies on its own schedule; either can scale out,
    scaling in requires both to agree.
    """

    def __init__(self, scope: Construct, construct_id: str, *,
                 stage: str,
                 project_name: str,
                 vpc: ec2.IVpc,
                 trust_group: ec2.ISecurityGroup,
                 target_group: elbv2.IApplicationTargetGroup,
                 repository: ecr.IRepository,
                 container_port: int = 80,
                 desired_count: int = 1,
                 min_capacity: int = 1,
                 max_capacity: int = 1,
                 private_compute: bool = False) -> None:
        super().__init__(scope, construct_id)

        self.stage = stage
        self.name = f"{project_name}-{stage}"
        self.container_name = project_name

        self.cluster = self.create_cluster(vpc)
        self.task_definition = self.create_task_definition()
        self.container = self.attach_container(
            self.task_definition, repository, container_port, log_stream_prefix=self.name
        )
        self.service = self.create_service(
            self.cluster, self.task_definition, target_group, trust_group, desired_count,
            private_compute=private_compute,
        )
        self.scaling = self.install_auto_scaling(self.service, min_capacity, max_capacity)
        self.stability_alarm = self.add_stability_alarm(desired_count)

        self.resource_tags()

    def create_cluster(self, vpc: ec2.IVpc) -> ecs.Cluster:
        return ecs.Cluster(self, "Cluster",
            cluster_name=self.name,
            vpc=vpc,
            container_insights=True
        )

    def create_task_definition(self) -> ecs.TaskDefinition:
        """Task definition in awsvpc mode: every task gets its own network interface."""
        return ecs.TaskDefinition(self, "Task",
            family=self.name,
            compatibility=ecs.Compatibility.EC2_AND_FARGATE,
            cpu=TASK_CPU,
            memory_mib=TASK_MEMORY_MIB,
            network_mode=ecs.NetworkMode.AWS_VPC
        )

    def attach_container(self, task_definition: ecs.TaskDefinition, repository: ecr.IRepository,
                         port: int, log_stream_prefix: str) -> ecs.ContainerDefinition:
        """Add the application container to the task definition.

        The container name is the same in every stage so one image definitions
        file produced by the build works for all deploy actions.
        """
        container = task_definition.add_container("Container",
            container_name=self.container_name,
            image=ecs.ContainerImage.from_ecr_repository(repository, IMAGE_TAG),
            memory_limit_mib=CONTAINER_MEMORY_MIB,
            logging=ecs.LogDrivers.aws_logs(stream_prefix=log_stream_prefix),
        )
        container.add_port_mappings(ecs.PortMapping(container_port=port))
        return container

    def create_service(self, cluster: ecs.ICluster, task_definition: ecs.TaskDefinition,
                       target_group: elbv2.IApplicationTargetGroup, trust_group: ec2.ISecurityGroup,
                       desired_count: int, *, private_compute: bool = False) -> ecs.FargateService:
        """Create the Fargate service and register it into the target group.

        Without private compute there is no NAT gateway, so tasks run in the
        public subnets with a public IP to reach the registry and CloudWatch Logs.
        """
        if private_compute:
            subnets = ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS)
        else:
            subnets = ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC)

        service = ecs.FargateService(self, "Service",
            cluster=cluster,
            task_definition=task_definition,
            desired_count=desired_count,
            security_groups=[trust_group],
            vpc_subnets=subnets,
            assign_public_ip=not private_compute,
        )
        service.attach_to_application_target_group(target_group)
        return service

    def install_auto_scaling(self, service: ecs.FargateService, min_capacity: int,
                             max_capacity: int) -> ecs.ScalableTaskCount:
        """Declare CPU and memory target tracking within ``[min_capacity, max_capacity]``."""
        scaling = service.auto_scale_task_count(
            min_capacity=min_capacity,
            max_capacity=max_capacity
        )
        scaling.scale_on_cpu_utilization("CpuScaling",
            target_utilization_percent=TARGET_UTILIZATION_PERCENT,
            scale_in_cooldown=SCALING_COOLDOWN,
            scale_out_cooldown=SCALING_COOLDOWN,
        )
        scaling.scale_on_memory_utilization("MemoryScaling",
            target_utilization_percent=TARGET_UTILIZATION_PERCENT,
            scale_in_cooldown=SCALING_COOLDOWN,
            scale_out_cooldown=SCALING_COOLDOWN,
        )
        return scaling

    def add_stability_alarm(self, desired_count: int):
        """Alarm when no task stays up, e.g. the ``latest`` image is missing.

        A service with a desired count of zero is allowed to run nothing.
        """
        if desired_count < 1:
            return None

        running_tasks = cloudwatch.Metric(
            namespace="ECS/ContainerInsights",
            metric_name="RunningTaskCount",
            dimensions_map={
                "ClusterName": self.cluster.cluster_name,
                "ServiceName": self.service.service_name,
            },
            statistic="Minimum",
            period=Duration.minutes(1),
        )
        return cloudwatch.Alarm(self, "StabilityAlarm",
            alarm_description=f"{self.name}: service cannot keep a task running",
            metric=running_tasks,
            threshold=1,
            comparison_operator=cloudwatch.ComparisonOperator.LESS_THAN_THRESHOLD,
            evaluation_periods=5,
            treat_missing_data=cloudwatch.TreatMissingData.BREACHING,
        )

    def resource_tags(self):
        """Apply resource tags"""
        Tags.of(self.cluster).add("ClusterType", "ECS")
        Tags.of(self.service).add("Stage", self.stage)

"""
Lambda collector
"""

from typing import Any, Dict, List

from . import ResourceCollector
from ..core.framework import CloudResource


class LambdaCollector(ResourceCollector):
    """Discovers Lambda functions"""

    service_name = "lambda"
    resource_types = ["lambda_function"]

    def discover_regional(self, account_id: str, region: str) -> List[CloudResource]:
        lambda_client = self.client(region)
        resources = []

        for func in self._paginate(lambda_client, "list_functions", "Functions"):
            function_arn = func["FunctionArn"]
            tags = self._safe_call(lambda_client.list_tags, Resource=function_arn) or {}
            resources.append(CloudResource(
                id=func["FunctionName"],
                type="lambda_function",
                arn=function_arn,
                name=func["FunctionName"],
                account_id=account_id,
                region=region,
                service="lambda",
                resource_type="function",
                tags=tags.get("Tags", {}),
                metadata={
                    "runtime": func.get("Runtime"),
                    "role": func.get("Role"),
                    "handler": func.get("Handler"),
                    "code_size": func.get("CodeSize"),
                    "timeout": func.get("Timeout"),
                    "memory_size": func.get("MemorySize"),
                    "last_modified": func.get("LastModified"),
                    "version": func.get("Version"),
                    "vpc_id": func.get("VpcConfig", {}).get("VpcId"),
                    "dead_letter_target": func.get("DeadLetterConfig", {}).get("TargetArn"),
                    "environment_variable_names": sorted(
                        func.get("Environment", {}).get("Variables", {}).keys()
                    ),
                    "kms_key_arn": func.get("KMSKeyArn"),
                    "tracing_mode": func.get("TracingConfig", {}).get("Mode"),
                    "package_type": func.get("PackageType"),
                    "architectures": func.get("Architectures", []),
                    "layers": [layer.get("Arn") for layer in func.get("Layers", [])],
                },
            ))

        self.logger.info(f"Lambda discovery in {region}: {len(resources)} functions")
        return resources

    def _fetch_configuration(self, resource: CloudResource) -> Dict[str, Any]:
        lambda_client = self.client(resource.region)
        name = resource.name

        def get(fn, key=None):
            response = self._safe_call(fn, FunctionName=name)
            if response is None:
                return None
            return response.get(key) if key else response

        return {
            "function": get(lambda_client.get_function),
            "configuration": get(lambda_client.get_function_configuration),
            "policy": get(lambda_client.get_policy, "Policy"),
            "event_source_mappings": get(lambda_client.list_event_source_mappings,
                                         "EventSourceMappings"),
            "aliases": get(lambda_client.list_aliases, "Aliases"),
            "versions": get(lambda_client.list_versions_by_function, "Versions"),
            "concurrency": get(lambda_client.get_function_concurrency),
            "url_config": get(lambda_client.get_function_url_config),
        }

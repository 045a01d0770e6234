"""
Resource collectors
Base class shared by the per-service AWS discovery collectors
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..core.exceptions import UnsupportedResourceError
from ..core.framework import CloudResource, ResourceConfig
from ..core.provider import AWSProvider

GLOBAL_REGION = "global"


class ResourceCollector(ABC):
    """Base class for all AWS service collectors.

    Collectors hold no region state: every call receives the region it works
    on and asks the provider for a client bound to that region.
    """

    service_name: str = ""
    resource_types: List[str] = []
    is_global: bool = False

    def __init__(self, provider: AWSProvider):
        self.provider = provider
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    def discover_regional(self, account_id: str, region: str) -> List[CloudResource]:
        """Enumerate this service's resources in one region"""

    @abstractmethod
    def _fetch_configuration(self, resource: CloudResource) -> Dict[str, Any]:
        """Retrieve the deep configuration for a single resource"""

    def get_configuration(self, resource: CloudResource) -> ResourceConfig:
        if resource.type not in self.resource_types:
            raise UnsupportedResourceError(
                f"Unsupported {self.service_name} resource type: {resource.type}"
            )
        configuration = self._fetch_configuration(resource)
        self.logger.info(f"Retrieved configuration for {resource.type} {resource.id}")
        return ResourceConfig(
            resource_id=resource.id,
            resource_type=resource.type,
            configuration=configuration,
        )

    def client(self, region: Optional[str] = None):
        if region == GLOBAL_REGION:
            region = None
        return self.provider.get_client(self.service_name, region)

    def _safe_call(self, fn: Callable, **kwargs) -> Optional[Dict[str, Any]]:
        """Call an AWS API, returning None when the sub-configuration is absent"""
        try:
            return fn(**kwargs)
        except (ClientError, BotoCoreError) as e:
            self.logger.debug(f"{getattr(fn, '__name__', fn)} unavailable: {e}")
            return None

    def _paginate(self, client, operation: str, key: str, **kwargs) -> Iterable[Dict[str, Any]]:
        paginator = client.get_paginator(operation)
        for page in paginator.paginate(**kwargs):
            yield from page.get(key, [])

    @staticmethod
    def _extract_tags(tags_list: Optional[List[Dict]],
                      key_name: str = "Key", value_name: str = "Value") -> Dict[str, str]:
        """Extract tags from AWS tag format"""
        return {
            tag[key_name]: tag.get(value_name, "")
            for tag in tags_list or []
            if tag.get(key_name)
        }

    @staticmethod
    def _isoformat(value) -> Optional[str]:
        return value.isoformat() if value is not None and hasattr(value, "isoformat") else value

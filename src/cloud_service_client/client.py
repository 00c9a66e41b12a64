"""Deployment client for hosted cloud services."""

import logging
from typing import Optional, Protocol
from xml.etree import ElementTree

import requests
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .errors import InvalidArgumentError, ManagementAPIError
from .models import (
    DeploymentSlot,
    DeploymentSnapshot,
    InstanceAction,
    ManagementConfig,
    RoleInstance,
)

logger = logging.getLogger(__name__)

AZURE_NAMESPACE = {"wa": "http://schemas.microsoft.com/windowsazure"}
TRANSIENT_ERRORS = (requests.ConnectionError, requests.Timeout)


class DeploymentClient(Protocol):
    """What the orchestrator and the waiter need from a deployment backend."""

    def get_snapshot(self, service_name: str, slot: DeploymentSlot) -> DeploymentSnapshot:
        ...

    def request_reimage(self, service_name: str, instance_name: str, slot: DeploymentSlot) -> Optional[str]:
        ...

    def request_reboot(self, service_name: str, instance_name: str, slot: DeploymentSlot) -> Optional[str]:
        ...


class ServiceManagementClient:
    """Service Management REST client authenticated with a management certificate."""

    def __init__(
        self,
        subscription_id: str,
        certificate_file: str,
        config: Optional[ManagementConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Validate settings and prepare an HTTP session.

        Args:
            subscription_id: Subscription that owns the hosted service
            certificate_file: PEM file holding the management certificate and key
            config: Optional pre-built configuration (overrides the two arguments above)
            session: Optional requests session, mainly for tests

        Raises:
            InvalidArgumentError: If the subscription id is empty or the certificate unreadable
        """
        if config is None:
            try:
                config = ManagementConfig(
                    subscription_id=subscription_id or "",
                    certificate_file=certificate_file or "",
                )
            except ValidationError as e:
                messages = "; ".join(error["msg"] for error in e.errors())
                raise InvalidArgumentError(messages) from e

        self.config = config
        self.session = session or requests.Session()
        self.session.cert = str(config.certificate_file)
        self.session.headers.update(
            {
                "x-ms-version": config.api_version,
                "Content-Type": "application/xml",
            }
        )

    def _slot_url(self, service_name: str, slot: DeploymentSlot) -> str:
        return (
            f"{self.config.endpoint}/{self.config.subscription_id}/services/hostedservices/"
            f"{service_name}/deploymentslots/{DeploymentSlot(slot).value.lower()}"
        )

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def get_snapshot(self, service_name: str, slot: DeploymentSlot) -> DeploymentSnapshot:
        """Fetch the current role instance list of a deployment slot."""
        response = self.session.get(
            self._slot_url(service_name, slot), timeout=self.config.request_timeout
        )
        self._raise_for_status(response)
        try:
            snapshot = parse_deployment(response.content, service_name, DeploymentSlot(slot))
        except ElementTree.ParseError as e:
            raise ManagementAPIError(
                response.status_code, f"Unreadable deployment document for {service_name}: {e}"
            ) from e
        logger.debug(
            "Fetched %d instance(s) of %s (%s)", len(snapshot), service_name, snapshot.slot.value
        )
        return snapshot

    def request_reimage(self, service_name: str, instance_name: str, slot: DeploymentSlot) -> Optional[str]:
        """Ask the service to reimage one role instance. Returns the request id."""
        return self._instance_action(service_name, instance_name, slot, InstanceAction.REIMAGE)

    def request_reboot(self, service_name: str, instance_name: str, slot: DeploymentSlot) -> Optional[str]:
        """Ask the service to reboot one role instance. Returns the request id."""
        return self._instance_action(service_name, instance_name, slot, InstanceAction.REBOOT)

    def _instance_action(
        self,
        service_name: str,
        instance_name: str,
        slot: DeploymentSlot,
        action: InstanceAction,
    ) -> Optional[str]:
        # Actions are not idempotent from the operator's point of view, so no retry here.
        url = f"{self._slot_url(service_name, slot)}/roleinstances/{instance_name}"
        response = self.session.post(
            url,
            params={"comp": action.value},
            data=b"",
            timeout=self.config.request_timeout,
        )
        self._raise_for_status(response)
        request_id = response.headers.get("x-ms-request-id")
        logger.info(
            "Requested %s of %s/%s (request id %s)", action.value, service_name, instance_name, request_id
        )
        return request_id

    @staticmethod
    def _raise_for_status(response: requests.Response) -> None:
        if response.ok:
            return
        code, message = parse_error(response.content)
        raise ManagementAPIError(response.status_code, message or response.reason or "", code)


def parse_deployment(payload: bytes, service_name: str, slot: DeploymentSlot) -> DeploymentSnapshot:
    """Turn a ``Deployment`` XML document into a snapshot, keeping instance order."""
    root = ElementTree.fromstring(payload)
    instances = []
    for node in root.findall("wa:RoleInstanceList/wa:RoleInstance", AZURE_NAMESPACE):
        instances.append(
            RoleInstance(
                name=node.findtext("wa:InstanceName", default="", namespaces=AZURE_NAMESPACE),
                status=node.findtext("wa:InstanceStatus", default="", namespaces=AZURE_NAMESPACE),
                role_name=node.findtext("wa:RoleName", namespaces=AZURE_NAMESPACE),
            )
        )
    return DeploymentSnapshot(
        service_name=service_name,
        slot=slot,
        instances=tuple(instances),
        deployment_name=root.findtext("wa:Name", namespaces=AZURE_NAMESPACE),
    )


def parse_error(payload: bytes):
    """Extract ``(Code, Message)`` from an error body; ``(None, None)`` if it is not XML."""
    try:
        root = ElementTree.fromstring(payload)
    except ElementTree.ParseError:
        return None, None
    return (
        root.findtext("wa:Code", namespaces=AZURE_NAMESPACE),
        root.findtext("wa:Message", namespaces=AZURE_NAMESPACE),
    )

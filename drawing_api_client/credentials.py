import json
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from loguru import logger
from pydantic import ValidationError

from drawing_api_client.errors import ConfigurationError
from drawing_api_client.models import DEFAULT_STACK_URL, StackCredential

DEFAULT_CREDENTIALS_PATH = "./credentials.json"


class CredentialStore:
    """Named stack credentials read from a local json file"""

    def __init__(self, stacks: Dict[str, dict], source: str = DEFAULT_CREDENTIALS_PATH):
        self.stacks = stacks
        self.source = source

    @classmethod
    def load(cls, path: Union[str, Path] = DEFAULT_CREDENTIALS_PATH) -> "CredentialStore":
        path = Path(path)
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"{path} not found or unreadable") from e

        try:
            stacks = json.loads(content)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"{path} is not valid json: {e}") from e

        if not isinstance(stacks, dict):
            raise ConfigurationError(f"{path} must map stack names to credentials")
        return cls(stacks, str(path))

    def resolve(self, stack_name: Optional[str] = None) -> Tuple[str, StackCredential]:
        """Select one stack, the first one in file order when no name is given"""
        if stack_name:
            if stack_name not in self.stacks:
                raise ConfigurationError(
                    f'No credentials for "{stack_name}" in "{self.source}"'
                )
            raw = self.stacks[stack_name]
        else:
            if not self.stacks:
                raise ConfigurationError(f'No credentials in "{self.source}"')
            stack_name, raw = next(iter(self.stacks.items()))

        if not isinstance(raw, dict):
            raise ConfigurationError(f"Credentials for stack={stack_name} must be an object")

        try:
            credential = StackCredential.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid credentials for stack={stack_name}: {e}") from e

        credential = validate_credential(credential)
        logger.info(f"Resolved credentials for stack={stack_name} url={credential.url}")
        return stack_name, credential


def validate_credential(credential: StackCredential) -> StackCredential:
    """Apply the default url and reject anything that cannot sign a request"""
    if not credential.url:
        credential = credential.model_copy(update={"url": DEFAULT_STACK_URL})

    if not credential.url.startswith("http"):
        raise ConfigurationError(f"url {credential.url} is invalid")
    if not credential.access_key:
        raise ConfigurationError("accessKey cannot be empty")
    if not credential.secret_key:
        raise ConfigurationError("secretKey cannot be empty")
    return credential


def resolve_credential(
    stack_name: Optional[str] = None,
    path: Union[str, Path] = DEFAULT_CREDENTIALS_PATH,
) -> Tuple[str, StackCredential]:
    return CredentialStore.load(path).resolve(stack_name)

"""
Keyboard-interactive prompt answering.

Servers send free-form prompts ("Password:", "Verification code:").
Each one is answered from the configured password or from a table of
(prompt substring -> response) pairs. A prompt with no answer aborts
authentication.
"""
from __future__ import annotations

from typing import Iterable, Sequence

from nbs_sftp.cancellation import CancellationToken, check_cancelled
from nbs_sftp.config import PromptResponse
from nbs_sftp.errors import InteractiveAuthError

NO_RESPONSE_MESSAGE = (
    "Failure in Keyboard-interactive authentication: "
    "No response given for server prompt request --> {prompt}"
)


def clean_prompt(prompt: str) -> str:
    """Drop ':' and surrounding whitespace, e.g. 'Token: ' -> 'Token'."""
    return prompt.replace(":", "").strip()


class InteractivePromptResolver:
    """
    Answers server prompts for one authentication attempt.

    Resolution order:
    1. If a password is set and the prompt mentions "password" (any
       case), answer with the password.
    2. Otherwise match the cleaned prompt against the table, ignoring
       case. An entry equal to the prompt wins; failing that, the first
       entry contained in the prompt wins.

    Usage:
        resolver = InteractivePromptResolver(
            password="secret",
            prompt_and_response=[PromptResponse("Verification code", "123456")],
        )
        resolver.respond("Verification code: ")  # "123456"
    """

    def __init__(
        self,
        password: str | None = None,
        prompt_and_response: Iterable[PromptResponse] = (),
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self._password = password
        self._table = tuple(prompt_and_response)
        self._cancel_token = cancel_token

    @property
    def table(self) -> tuple[PromptResponse, ...]:
        return self._table

    def _lookup(self, cleaned: str) -> str | None:
        needle = cleaned.lower()
        substring_hit: str | None = None
        for entry in self._table:
            key = entry.prompt.lower()
            if key == needle:
                return entry.response
            if substring_hit is None and key in needle:
                substring_hit = entry.response
        return substring_hit

    def respond(self, prompt: str) -> str:
        """
        Answer a single prompt.

        Raises:
            InteractiveAuthError: If nothing answers the prompt
        """
        if self._password and "password" in prompt.lower():
            return self._password

        cleaned = clean_prompt(prompt)
        response = self._lookup(cleaned)
        if response is None:
            raise InteractiveAuthError(
                NO_RESPONSE_MESSAGE.format(prompt=cleaned),
                prompt=cleaned,
            )
        return response

    def respond_all(self, prompts: Sequence[str]) -> list[str]:
        """
        Answer every prompt of one challenge, in order.

        Raises:
            OperationCancelled: If the token fires between prompts
            InteractiveAuthError: If any prompt has no answer
        """
        responses: list[str] = []
        for prompt in prompts:
            check_cancelled(self._cancel_token)
            responses.append(self.respond(prompt))
        return responses

import base64
import json
import logging
import os
from typing import Any, Dict, List, Optional, Sequence, Tuple

from openai import AsyncOpenAI

from .errors import ErrorKind, MalformedResponseError, PipelineError, error_for_kind
from .types import RECORD_KEYS, ImagePart, StudentRecord

logger = logging.getLogger(__name__)


API_TIMEOUT = int(os.getenv("API_TIMEOUT", "300"))


def _get_azure_client(timeout: int = API_TIMEOUT) -> AsyncOpenAI:
    endpoint = os.getenv("AZURE_OPENAI_ENDPOINT")
    deployment = os.getenv("AZURE_OPENAI_DEPLOYMENT")
    api_key = os.getenv("AZURE_OPENAI_API_KEY")
    if not (endpoint and deployment and api_key):
        raise RuntimeError("Variables Azure manquantes: AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_DEPLOYMENT, AZURE_OPENAI_API_KEY")
    base_url = endpoint.rstrip('/') + "/openai/v1/"
    return AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)


FIELD_DESCRIPTIONS: Dict[str, str] = {
    "hoTen": "Full name of the student.",
    "sdtZalo": "Phone number or Zalo number.",
    "cccd": "Citizen ID number.",
    "tinhThanh": "Province or City (before any mergers).",
    "truongThpt": "Name of the high school.",
    "email": "Email address for receiving information.",
    "nganhHoc": "The major(s) the student is applying for.",
}


def _response_schema() -> Dict[str, Any]:
    return {
        "type": "array",
        "items": {
            "type": "object",
            "properties": {
                key: {"type": "string", "description": FIELD_DESCRIPTIONS[key]}
                for key in RECORD_KEYS
            },
            "required": list(RECORD_KEYS),
            "additionalProperties": False,
        },
    }


def _build_instructions() -> str:
    keys = ", ".join(f"'{k}'" for k in RECORD_KEYS)
    parts: List[str] = []
    parts.append(
        "You are an expert OCR system specialized in extracting student application data "
        "for Hoa Sen University (HSU) from Vietnam."
    )
    parts.append(
        "Analyze the following image(s) of school data forms or spreadsheets.\n"
        "Extract the data for each unique student record."
    )
    parts.append(
        "The required columns are: 'Họ & tên', 'SĐT/ Zalo', 'Căn cước Công dân', "
        "'Tỉnh/ Thành phố: (trước sáp nhập)', 'Tên trường THPT', "
        "'Email nhận thông tin/ kết quả xét', 'Ngành học xét'."
    )
    parts.append(
        "Ignore any headers, footers, summary rows, or rows that do not represent a student record.\n"
        "Return the result as a JSON array where each object represents one student.\n"
        f"The keys of the object must be exactly: {keys}.\n"
        'If a value is not found for a field, use an empty string "". Ensure the email format is valid.\n'
        "Process all images provided to compile a complete list."
    )
    return "\n".join(parts)


def _image_to_data_url(part: ImagePart) -> str:
    b64 = base64.b64encode(part.data).decode("utf-8")
    return f"data:{part.media_type};base64,{b64}"


# Motifs recherchés (insensible à la casse) dans le message d'erreur du service.
# Le premier groupe qui correspond l'emporte.
_CLASSIFICATION_RULES: Tuple[Tuple[ErrorKind, Tuple[str, ...]], ...] = (
    (ErrorKind.MALFORMED_RESPONSE, ("jsondecodeerror", "invalid json")),
    (
        ErrorKind.INVALID_CREDENTIALS,
        ("api key", "api_key", "401", "403", "unauthorized", "authentication",
         "permission denied", "invalid credential", "azure_openai_"),
    ),
    (
        ErrorKind.RATE_LIMITED,
        ("429", "rate limit", "ratelimit", "quota", "resource exhausted", "too many requests"),
    ),
    (
        ErrorKind.CONTENT_BLOCKED,
        ("safety", "content_filter", "content filter", "content policy", "blocked",
         "responsibleaipolicyviolation"),
    ),
)


def classify_service_error(exc: BaseException) -> PipelineError:
    """
    Convertit une erreur brute du service d'extraction en `PipelineError`.

    Classification heuristique sur le texte de l'erreur (le service n'expose pas
    de code d'erreur structuré). C'est le seul endroit à modifier si cela change.
    """
    if isinstance(exc, PipelineError):
        return exc

    haystack = f"{type(exc).__name__} {exc}".lower()
    for kind, needles in _CLASSIFICATION_RULES:
        if any(needle in haystack for needle in needles):
            return error_for_kind(kind)
    return error_for_kind(ErrorKind.UNCLASSIFIED_SERVICE_ERROR)


def parse_records(raw: str) -> List[StudentRecord]:
    """
    Valide et décode la réponse JSON du modèle.

    La réponse doit être un tableau (`[` ... `]`) d'objets; sinon
    `MalformedResponseError`. L'ordre est conservé tel quel.
    """
    text = (raw or "").strip()
    if not (text.startswith("[") and text.endswith("]")):
        logger.error("Réponse non structurée reçue du modèle: %.200r", text)
        raise MalformedResponseError()

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.error("Décodage JSON impossible: %s", exc)
        raise MalformedResponseError() from exc

    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        logger.error("La sortie JSON doit être un tableau d'objets (un objet par étudiant).")
        raise MalformedResponseError()

    return [StudentRecord.from_dict(item) for item in data]


class ExtractionClient:
    """
    Client du service d'extraction structurée (Azure OpenAI, Responses API).

    Un seul appel par exécution: toutes les images (tous fichiers, toutes pages)
    partent ensemble pour que le modèle consolide les enregistrements en une passe.
    Aucune nouvelle tentative automatique.
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        deployment: Optional[str] = None,
        timeout: int = API_TIMEOUT,
    ):
        self._client = client
        self.deployment = deployment
        self.timeout = timeout

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = _get_azure_client(self.timeout)
        return self._client

    def build_request(self, image_parts: Sequence[ImagePart]) -> Dict[str, Any]:
        deployment = self.deployment or os.getenv("AZURE_OPENAI_DEPLOYMENT")
        if not deployment:
            raise RuntimeError("Configuration Azure invalide: AZURE_OPENAI_DEPLOYMENT non défini (nom du déploiement Azure)")

        content: List[Dict[str, Any]] = [
            {"type": "input_text", "text": "Extract every student record from these images."}
        ]
        content.extend(
            {"type": "input_image", "image_url": _image_to_data_url(part)} for part in image_parts
        )
        return {
            "model": deployment,
            "instructions": _build_instructions(),
            "input": [{"role": "user", "content": content}],
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": "student_records",
                    "schema": _response_schema(),
                    "strict": False,
                }
            },
        }

    async def extract(self, image_parts: Sequence[ImagePart]) -> List[StudentRecord]:
        try:
            request = self.build_request(image_parts)
            client = self._get_client()
            logger.info("Envoi de %d image(s) au modèle %s", len(image_parts), request["model"])
            resp = await client.responses.create(**request)

            if getattr(resp, "status", None) == "incomplete":
                details = getattr(resp, "incomplete_details", None)
                reason = getattr(details, "reason", None) or "unknown"
                raise RuntimeError(f"Réponse incomplète du service: {reason}")

            records = parse_records(getattr(resp, "output_text", "") or "")
        except Exception as exc:
            error = classify_service_error(exc)
            if error is not exc:
                logger.exception("Échec de l'appel au service d'extraction (classé: %s)", error.kind.value)
                raise error from exc
            raise

        logger.info("%d enregistrement(s) extrait(s)", len(records))
        return records

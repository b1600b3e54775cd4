from __future__ import annotations

from dispatch_hub.carriers.formats import ApiFormat
from dispatch_hub.core.errors import ConfigurationError
from dispatch_hub.models.delivery_company import DeliveryCompany
from dispatch_hub.mapping.policies import build_policy
from dispatch_hub.schemas.company import CompanySettings, ConfigIssue
from dispatch_hub.schemas.field_mapping import ensure_unique_targets, load_field_mappings
from dispatch_hub.services.credential_vault import CredentialVault, Credentials


def check_company_config(company: DeliveryCompany, vault: CredentialVault) -> list[ConfigIssue]:
    issues: list[ConfigIssue] = []

    if not company.is_active:
        issues.append(ConfigIssue(code="COMPANY_INACTIVE", message="Delivery company is deactivated", field="isActive"))

    if not (company.api_url or "").strip():
        issues.append(ConfigIssue(code="MISSING_API_URL", message="No API base URL configured", field="apiUrl"))

    try:
        api_format = ApiFormat(company.api_format)
    except ValueError:
        issues.append(ConfigIssue(code="UNKNOWN_API_FORMAT", message=f"Unsupported API format '{company.api_format}'", field="apiFormat"))
        api_format = None

    if api_format is not None:
        try:
            vault.resolve(company)
        except ConfigurationError as e:
            for i in e.issues:
                issues.append(ConfigIssue(
                    code=i["code"],
                    message=(
                        f"Credential '{i['field']}' is required for {api_format.value}"
                        if i["code"] == "MISSING_CREDENTIAL" else e.message
                    ),
                    field=f"credentials.{i['field']}" if i["code"] == "MISSING_CREDENTIAL" else "credentials",
                ))
        if api_format is ApiFormat.REST and not vault.describe(company.credentials_ciphertext).get("api_key"):
            issues.append(ConfigIssue(
                code="NO_API_KEY",
                message="No API key configured; requests are sent without an Authorization header",
                field="credentials.apiKey",
                severity="warning",
            ))

    try:
        rules = load_field_mappings(company.field_mappings)
        ensure_unique_targets(rules)
        if not any(r.enabled for r in rules):
            issues.append(ConfigIssue(code="NO_FIELD_MAPPINGS", message="No enabled field mappings", field="fieldMappings", severity="warning"))
    except ValueError as e:
        issues.append(ConfigIssue(code="INVALID_FIELD_MAPPINGS", message=str(e), field="fieldMappings"))

    try:
        for policy in CompanySettings.model_validate(company.settings or {}).field_policies.values():
            build_policy(policy)
    except (KeyError, ValueError) as e:
        issues.append(ConfigIssue(code="INVALID_SETTINGS", message=f"Invalid company settings: {e}", field="settings"))

    return issues


def ensure_dispatchable(company: DeliveryCompany, vault: CredentialVault) -> Credentials:
    """
    Pre-dispatch guard. Returns the decrypted credentials for this single dispatch.
    """
    errors = [i for i in check_company_config(company, vault) if i.severity == "error"]
    if errors:
        raise ConfigurationError(
            f"Delivery company {company.id} is not usable: " + "; ".join(i.message for i in errors),
            company_id=company.id,
            issues=[i.model_dump() for i in errors],
        )
    return vault.resolve(company)

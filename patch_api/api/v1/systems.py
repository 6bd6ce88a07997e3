from fastapi import APIRouter, Depends, Request
from sqlalchemy import not_
from sqlalchemy.orm import Query, Session

from patch_api.core.deps import get_account
from patch_api.db.session import get_db
from patch_api.models.account import RhAccount
from patch_api.models.system_platform import SystemPlatform
from patch_api.schemas.listing import FilterOperator, FilterSpec
from patch_api.services.field_registry import (
    array_filter,
    build_registry,
    field,
    filter_only,
    presence_filter,
    tag_field,
)
from patch_api.services.listing import ListOptions, export_common, list_common, render_export, render_list
from patch_api.services.rendering import negotiate

_PROFILE = SystemPlatform.system_profile
_OS_NAME = _PROFILE[("operating_system", "name")].as_string()
_OS_MAJOR = _PROFILE[("operating_system", "major")].as_integer()
_OS_MINOR = _PROFILE[("operating_system", "minor")].as_integer()
# "RHEL 8.10"; NULL when any part is missing.
_OS = (
    _OS_NAME
    + " "
    + _PROFILE[("operating_system", "major")].as_string()
    + "."
    + _PROFILE[("operating_system", "minor")].as_string()
)

SYSTEMS_FIELDS = build_registry(
    "systems",
    [
        field("id", SystemPlatform.inventory_id),
        field("display_name", SystemPlatform.display_name),
        field("last_evaluation", SystemPlatform.last_evaluation),
        field("last_upload", SystemPlatform.last_upload),
        field("rhsa_count", SystemPlatform.advisory_sec_count_cache),
        field("rhba_count", SystemPlatform.advisory_bug_count_cache),
        field("rhea_count", SystemPlatform.advisory_enh_count_cache),
        field("other_count", SystemPlatform.advisory_other_count_cache),
        field("packages_installed", SystemPlatform.packages_installed, default=0),
        field("packages_updatable", SystemPlatform.packages_updatable, default=0),
        field("enabled", not_(SystemPlatform.opt_out)),
        field("stale", SystemPlatform.stale),
        field("os", _OS),
        tag_field("tags"),
        filter_only("osname", _OS_NAME),
        filter_only("osmajor", _OS_MAJOR),
        filter_only("osminor", _OS_MINOR),
        filter_only("system_profile.sap_system", _PROFILE["sap_system"].as_boolean()),
        array_filter("system_profile.sap_sids", _PROFILE["sap_sids"].as_string()),
        presence_filter("system_profile.ansible", _PROFILE["ansible"].as_string()),
        filter_only("system_profile.ansible.controller_version", _PROFILE[("ansible", "controller_version")].as_string()),
        presence_filter("system_profile.mssql", _PROFILE["mssql"].as_string()),
        filter_only("system_profile.mssql.version", _PROFILE[("mssql", "version")].as_string()),
    ],
)

# Only fresh systems unless the caller filters on stale explicitly.
SYSTEMS_DEFAULT_FILTERS = {"stale": FilterSpec(field="stale", op=FilterOperator.EQ, values=("false",))}

SYSTEMS_OPTS = ListOptions(
    registry=SYSTEMS_FIELDS,
    item_type="system",
    default_filters=SYSTEMS_DEFAULT_FILTERS,
    default_sort="-last_upload",
    search_field="display_name",
    tag_join_key=SystemPlatform.inventory_id,
    allow_unlimited=True,
)

router = APIRouter()


def query_systems(db: Session, account: str) -> Query:
    return (
        db.query(*SYSTEMS_FIELDS.select())
        .select_from(SystemPlatform)
        .join(RhAccount, RhAccount.id == SystemPlatform.rh_account_id)
        .filter(RhAccount.name == account)
    )


@router.get("/systems")
def list_systems(request: Request, db: Session = Depends(get_db), account: str = Depends(get_account)):
    content_type = negotiate(request.headers.get("accept"))
    result = list_common(db, query_systems(db, account), request, SYSTEMS_OPTS)
    return render_list(content_type, SYSTEMS_OPTS, result)


@router.get("/export/systems")
def export_systems(request: Request, db: Session = Depends(get_db), account: str = Depends(get_account)):
    content_type = negotiate(request.headers.get("accept"))
    rows = export_common(db, query_systems(db, account), request, SYSTEMS_OPTS)
    return render_export(content_type, SYSTEMS_OPTS, rows)

"""
Package Routes - catalogue, credit assignment and member package requests.
"""
from typing import Optional
from fastapi import APIRouter, Depends
from auth import get_current_user, require_role
from service_modules.package_service import PackageService, get_package_service
from service_modules.directory_service import DirectoryService, get_directory_service
from models import AssignPackageRequest, PackageCredit, PackageRequestCreate

router = APIRouter()


@router.get("/api/packages")
async def list_packages(
    user = Depends(get_current_user),
    service: PackageService = Depends(get_package_service)
):
    return service.list_packages()


@router.get("/api/package-types")
async def list_package_types(
    user = Depends(get_current_user),
    service: PackageService = Depends(get_package_service)
):
    return service.list_package_types()


# --- MEMBER ENDPOINTS ---

@router.post("/api/member/package-requests")
async def request_package(
    request: PackageRequestCreate,
    user = Depends(require_role("member")),
    directory: DirectoryService = Depends(get_directory_service),
    service: PackageService = Depends(get_package_service)
):
    member = directory.get_member_for_user(user.id)
    return service.request_package(member["id"], request)


# --- ADMIN ENDPOINTS ---

@router.get("/api/admin/members")
async def list_members(
    user = Depends(require_role("admin")),
    directory: DirectoryService = Depends(get_directory_service)
):
    """Members that currently hold usable credits."""
    return directory.list_members_with_credits()


@router.get("/api/admin/members/{member_id}/packages")
async def get_member_credits(
    member_id: str,
    user = Depends(require_role("admin")),
    directory: DirectoryService = Depends(get_directory_service)
):
    directory.get_member(member_id)
    return directory.get_member_credits(member_id)


@router.post("/api/admin/members/{member_id}/packages", response_model=PackageCredit)
async def assign_package(
    member_id: str,
    request: AssignPackageRequest,
    user = Depends(require_role("admin")),
    service: PackageService = Depends(get_package_service)
):
    return service.assign_package(member_id, request, user.id)


@router.delete("/api/admin/member-packages/{member_package_id}")
async def remove_credit(
    member_package_id: str,
    user = Depends(require_role("admin")),
    service: PackageService = Depends(get_package_service)
):
    return service.remove_credit(member_package_id, user.id)


@router.get("/api/admin/package-requests")
async def list_package_requests(
    status: Optional[str] = "pending",
    user = Depends(require_role("admin")),
    service: PackageService = Depends(get_package_service)
):
    return service.list_package_requests(status)


@router.post("/api/admin/package-requests/{request_id}/approve")
async def approve_request(
    request_id: str,
    user = Depends(require_role("admin")),
    service: PackageService = Depends(get_package_service)
):
    return service.approve_request(request_id, user.id)


@router.post("/api/admin/package-requests/{request_id}/reject")
async def reject_request(
    request_id: str,
    user = Depends(require_role("admin")),
    service: PackageService = Depends(get_package_service)
):
    return service.reject_request(request_id, user.id)


@router.post("/api/admin/packages/expire")
async def expire_credits(
    user = Depends(require_role("admin")),
    service: PackageService = Depends(get_package_service)
):
    return service.expire_credits()


@router.post("/api/admin/packages/expiry-warnings")
async def send_expiry_warnings(
    days: int = 7,
    user = Depends(require_role("admin")),
    service: PackageService = Depends(get_package_service)
):
    return service.send_expiry_warnings(days)

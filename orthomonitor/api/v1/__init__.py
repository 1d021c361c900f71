from fastapi import APIRouter
from .auth.auth_routes import router as auth_router
from .patient_auth.patient_auth_routes import router as patient_auth_router
from .patients.patient_routes import router as patient_router
from .practices.practice_routes import router as practice_router
from .scans.scan_routes import router as scan_router
from .scans.upload_routes import router as upload_router
from .tagging.tagging_routes import router as tagging_router
from .dashboard.dashboard_routes import router as dashboard_router
from .messaging.message_routes import router as messaging_router
from .patient_portal.portal_profile_routes import router as portal_profile_router
from .patient_portal.portal_scan_routes import router as portal_scan_router
from .patient_portal.portal_message_routes import router as portal_message_router
from .patient_portal.portal_push_routes import router as portal_push_router
from .meta.meta_routes import router as meta_router

router = APIRouter()


router.include_router(auth_router)
router.include_router(patient_auth_router)
router.include_router(practice_router)
router.include_router(patient_router)
router.include_router(scan_router)
router.include_router(upload_router)
router.include_router(tagging_router)
router.include_router(dashboard_router)
router.include_router(messaging_router)
router.include_router(portal_profile_router)
router.include_router(portal_scan_router)
router.include_router(portal_message_router)
router.include_router(portal_push_router)
router.include_router(meta_router)

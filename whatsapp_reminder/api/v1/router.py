from fastapi import APIRouter

from whatsapp_reminder.api.v1.endpoints import reminders

api_router = APIRouter()
api_router.include_router(reminders.router)

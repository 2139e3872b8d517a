from fastapi import APIRouter, Depends

from detailing.integrations.google_calendar import GoogleCalendarClient
from detailing.routes.common import get_calendar_client

router = APIRouter(tags=['calendar'])


@router.get('/status')
async def calendar_status(calendar_client: GoogleCalendarClient = Depends(get_calendar_client)):
    return await calendar_client.check_status()

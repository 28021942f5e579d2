import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from dentalcare.core import config
from dentalcare.database import Base, engine, ensure_appointment_schema
from dentalcare.models import appointment, dentist, service, user  # noqa: F401
from dentalcare.routes import appointment_routes, auth_routes, availability_routes, service_routes

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

app = FastAPI(title='DentalCare Booking API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL.')


@app.get('/')
def root():
    return {'status': 'DentalCare Booking API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(availability_routes.router, prefix='/dentists')
app.include_router(service_routes.router, prefix='/services')
app.include_router(appointment_routes.router, prefix='/appointments')


if __name__ == '__main__':
    import os

    import uvicorn

    uvicorn.run(app, host='0.0.0.0', port=int(os.getenv('PORT', '8000')))

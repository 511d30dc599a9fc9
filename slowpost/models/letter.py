# slowpost/models/letter.py
"""
Letter table for cloud mode

Columns are snake_case versions of the Letter fields. The remote table may
lag behind this definition; writes drop columns the table does not have.
"""

from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, JSON
from sqlalchemy.dialects import mysql
from .base import Base

LongText = Text().with_variant(mysql.LONGTEXT(), "mysql")


class LetterRow(Base):
    __tablename__ = "letters"

    id = Column(String(36), primary_key=True)
    sender_name = Column(String(100), nullable=False)
    sender_country = Column(String(100))
    recipient_name = Column(String(100), nullable=False)
    recipient_email = Column(String(255))
    letter_content = Column(LongText, nullable=False, default="")
    delay_minutes = Column(Integer, nullable=False, default=0)
    delay_days = Column(Integer, nullable=False, default=0)
    schedule_time = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False)
    image_urls = Column(JSON)
    video_urls = Column(JSON)
    audio_url = Column(Text)
    stamp_data = Column(LongText)
    stamp_template = Column(String(20), default="classic")
    paper_theme = Column(String(20), default="classic")
    ambience_music = Column(Boolean, default=False)
    stickers = Column(JSON)
    holiday_theme = Column(String(20), default="none")
    edit_password_hash = Column(String(255))

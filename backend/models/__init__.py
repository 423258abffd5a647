from models.allocation import Allocation
from models.allocation_run import AllocationRun
from models.base import Base
from models.exam import Exam
from models.examinee import Examinee, ExamRegistration
from models.hall import Hall
from models.hall_teacher import TeacherHallAssignment
from models.seat_conflict import SeatConflict

__all__ = [
	"Allocation",
	"AllocationRun",
	"Base",
	"Exam",
	"Examinee",
	"ExamRegistration",
	"Hall",
	"SeatConflict",
	"TeacherHallAssignment",
]

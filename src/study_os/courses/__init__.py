from study_os.courses.directory import CourseDirectory, CourseWithNickname, SyncResult, apply_nicknames

__all__ = ["CourseDirectory", "CourseWithNickname", "SyncResult", "apply_nicknames"]

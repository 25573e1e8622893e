from .service import DuplicateDetectionService, similarity_color, similarity_label

WINDOW_SIZE = 10  # samples per feature window
NUM_AXES = 3  # x, y, z
NUM_CLASSES = 4
CLASS_LABELS = ("horizontal", "vertical", "still", "circular")
NUM_MOTION_FEATURES = 26
CONFIDENCE_THRESHOLD = 0.3  # max probability needed to replace the visible label
LABEL_COLUMN = "class"
FEATURE_OFFSET = 1  # first value column after the class id
